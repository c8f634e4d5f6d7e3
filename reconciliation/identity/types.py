"""
Identity Reconciliation Type Definitions

Contact records, identify request/response shapes and the consolidated view.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LinkPrecedence(str, Enum):
    """Position of a contact record inside its cluster."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class ContactRecord(BaseModel):
    """
    A single stored contact submission.

    Primaries have no `linked_id`; secondaries point directly at their
    cluster's canonical primary.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    email: str | None = None
    phone_number: str | None = None
    linked_id: int | None = None
    link_precedence: LinkPrecedence = LinkPrecedence.PRIMARY
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LinkPrecedence.PRIMARY

    @property
    def is_secondary(self) -> bool:
        return self.link_precedence == LinkPrecedence.SECONDARY

    @property
    def creation_key(self) -> tuple[datetime, int]:
        """Oldest-wins ordering key; the store-assigned id breaks timestamp ties."""
        return (self.created_at, self.id)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IdentifyRequest(_CamelModel):
    """Identity assertion submitted to `/identify`."""

    email: str | None = None
    phone_number: str | None = None

    @field_validator("email", "phone_number", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        # Clients send phone numbers as JSON numbers as often as strings.
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        if value == "":
            return None
        return value


class ConsolidatedView(_CamelModel):
    """Merged view of one contact cluster, anchored at its primary."""

    primary_contact_id: int
    emails: list[str] = Field(default_factory=list)
    phone_numbers: list[str] = Field(default_factory=list)
    secondary_contact_ids: list[int] = Field(default_factory=list)


class IdentifyResponse(_CamelModel):
    """Response body for `/identify`."""

    contact: ConsolidatedView
