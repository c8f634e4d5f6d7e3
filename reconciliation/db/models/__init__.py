"""Database models."""

from reconciliation.db.models.contact import Base, Contact

__all__ = [
    "Base",
    "Contact",
]
