"""Identity reconciliation service.

Clusters contact submissions that share an email or phone number and keeps one
canonical primary contact per cluster.
"""

__version__ = "0.1.0"
