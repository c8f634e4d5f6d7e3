"""
Cluster Consolidation Planning

Pure functions that decide, from a snapshot of a contact cluster, which
record is canonical and which writes keep the cluster flat. Nothing here
touches storage; the reconciler applies the resulting plan.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .types import ContactRecord


@dataclass(frozen=True, slots=True)
class ConsolidationPlan:
    """Writes needed to settle one cluster under its canonical primary."""

    canonical: ContactRecord
    create_secondary: bool
    demote_ids: tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_noop(self) -> bool:
        return not self.create_secondary and not self.demote_ids


def unique_by_id(*groups: Iterable[ContactRecord]) -> list[ContactRecord]:
    """Concatenate record groups, keeping the first occurrence of each id."""
    seen: set[int] = set()
    merged: list[ContactRecord] = []
    for group in groups:
        for record in group:
            if record.id in seen:
                continue
            seen.add(record.id)
            merged.append(record)
    return merged


def reachable_primary_ids(cluster: Iterable[ContactRecord]) -> set[int]:
    """Ids of every primary in the cluster or referenced by one of its secondaries."""
    ids: set[int] = set()
    for record in cluster:
        if record.is_primary:
            ids.add(record.id)
        elif record.linked_id is not None:
            ids.add(record.linked_id)
    return ids


def has_new_information(
    cluster: Iterable[ContactRecord],
    email: str | None,
    phone_number: str | None,
) -> bool:
    """True when a submitted identifier appears nowhere in the cluster.

    Each field is checked on its own; both may already exist on different
    records and the submission still counts as known.
    """
    cluster = list(cluster)
    known_emails = {record.email for record in cluster}
    known_phones = {record.phone_number for record in cluster}
    email_is_new = email is not None and email not in known_emails
    phone_is_new = phone_number is not None and phone_number not in known_phones
    return email_is_new or phone_is_new


def plan_consolidation(
    cluster: Sequence[ContactRecord],
    primaries_by_age: Sequence[ContactRecord],
    email: str | None,
    phone_number: str | None,
) -> ConsolidationPlan:
    """
    Decide the canonical primary and the writes that flatten the cluster.

    Args:
        cluster: Non-empty candidate cluster (direct matches plus one hop of links)
        primaries_by_age: Every reachable primary, oldest first
        email: Submitted email, if any
        phone_number: Submitted phone number, if any

    Returns:
        ConsolidationPlan naming the canonical record, whether a secondary must
        be created, and which other primaries must be demoted under it
    """
    if not cluster:
        raise ValueError("Cannot plan consolidation of an empty cluster")

    canonical = primaries_by_age[0] if primaries_by_age else cluster[0]

    demote_ids = tuple(
        record.id
        for record in cluster
        if record.is_primary and record.id != canonical.id
    )

    return ConsolidationPlan(
        canonical=canonical,
        create_secondary=has_new_information(cluster, email, phone_number),
        demote_ids=demote_ids,
    )
