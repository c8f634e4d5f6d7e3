"""
Contact Database Model

SQLAlchemy model for the contacts table backing identity reconciliation.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import declarative_base

from reconciliation.kernel.time import utc_now

Base = declarative_base()


class Contact(Base):
    """
    One contact submission.

    A row is either a primary (no link) or a secondary linked directly to the
    primary of its cluster.
    """

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identifiers (exact-match keys)
    phone_number = Column(String(64), nullable=True, index=True)
    email = Column(String(320), nullable=True, index=True)

    # Linking
    linked_id = Column(Integer, ForeignKey("contacts.id"), nullable=True, index=True)
    link_precedence = Column(String(10), nullable=False, default="primary")  # primary, secondary

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "link_precedence IN ('primary', 'secondary')",
            name="ck_contacts_link_precedence",
        ),
        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="ck_contacts_secondary_has_link",
        ),
        Index("ix_contacts_created_at_id", "created_at", "id"),
    )

    def __repr__(self) -> str:
        return f"<Contact {self.id} ({self.link_precedence} -> {self.linked_id})>"
