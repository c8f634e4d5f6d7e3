"""
Contact Identity Reconciliation Module

Clusters contact submissions that share an email or phone number and keeps
each cluster flat under its oldest primary contact.
"""

from .planner import ConsolidationPlan, plan_consolidation
from .reconciler import IdentifyResult, Reconciler, observe_identify
from .store import (
    ContactStore,
    InMemoryContactStore,
    PostgresContactStore,
    get_store_provider,
)
from .types import (
    ConsolidatedView,
    ContactRecord,
    IdentifyRequest,
    IdentifyResponse,
    LinkPrecedence,
)
from .view import build_consolidated_view

__all__ = [
    "Reconciler",
    "IdentifyResult",
    "observe_identify",
    "ContactStore",
    "InMemoryContactStore",
    "PostgresContactStore",
    "get_store_provider",
    "ConsolidationPlan",
    "plan_consolidation",
    "build_consolidated_view",
    "ConsolidatedView",
    "ContactRecord",
    "IdentifyRequest",
    "IdentifyResponse",
    "LinkPrecedence",
]
