"""Consolidated view assembly."""

from collections.abc import Iterable, Sequence

from .types import ConsolidatedView, ContactRecord


def _ordered_unique(first: str | None, rest: Iterable[str | None]) -> list[str]:
    values: list[str] = []
    if first is not None:
        values.append(first)
    for value in rest:
        if value is not None and value not in values:
            values.append(value)
    return values


def build_consolidated_view(
    primary: ContactRecord,
    records: Sequence[ContactRecord] = (),
) -> ConsolidatedView:
    """
    Merge a cluster into one view anchored at its primary.

    The primary's own email and phone lead their lists; the remaining values
    follow in the order the records were returned. With no records, the view
    covers the primary alone.
    """
    if not records:
        records = [primary]

    return ConsolidatedView(
        primary_contact_id=primary.id,
        emails=_ordered_unique(primary.email, (record.email for record in records)),
        phone_numbers=_ordered_unique(
            primary.phone_number, (record.phone_number for record in records)
        ),
        secondary_contact_ids=[record.id for record in records if record.is_secondary],
    )
