"""
Contact Identity Reconciler

Consolidates an incoming (email, phone) submission into the contact cluster it
belongs to.

For every submission the reconciler:
1. Finds records sharing the email or phone, plus one hop of links
2. Creates a new primary when nothing matches
3. Picks the oldest reachable primary as canonical
4. Creates a secondary when the submission carries an unseen email or phone
5. Demotes competing primaries and re-points their secondaries (no chains)
6. Re-reads the cluster and returns the consolidated view
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from reconciliation.kernel.errors import ValidationError
from reconciliation.monitoring.metrics import Metrics
from .planner import ConsolidationPlan, plan_consolidation, reachable_primary_ids, unique_by_id
from .store import ContactStore
from .types import ConsolidatedView, ContactRecord, LinkPrecedence
from .view import build_consolidated_view

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class IdentifyResult:
    """Consolidated view plus what the submission changed."""

    view: ConsolidatedView
    outcome: str
    demoted: int = 0


async def observe_identify(
    metrics: Metrics,
    resolve: Callable[[], Awaitable[IdentifyResult]],
) -> ConsolidatedView:
    """
    Run `resolve` and record its outcome once it has returned.

    Callers that commit inside `resolve` get success counted only after the
    commit; a failed commit is counted as an error.
    """
    try:
        with metrics.time_identify():
            result = await resolve()
    except ValidationError:
        metrics.record_identify("invalid")
        raise
    except Exception:
        metrics.record_identify("error")
        raise

    metrics.record_identify(result.outcome)
    metrics.record_demotions(result.demoted)
    return result.view


class Reconciler:
    """
    Resolves identity assertions against a ContactStore.

    Requests are not serialized against each other; the store's isolation
    level governs concurrent submissions touching the same cluster.
    """

    def __init__(self, store: ContactStore, metrics: Metrics | None = None):
        self.store = store
        self.metrics = metrics

    async def identify(
        self,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> ConsolidatedView:
        """
        Consolidate a submission and return the merged view of its cluster.

        Args:
            email: Submitted email (exact, case-sensitive match)
            phone_number: Submitted phone number (exact match)

        Returns:
            ConsolidatedView anchored at the cluster's canonical primary

        Raises:
            ValidationError: Neither identifier was provided
            StoreError: The contact store failed (propagated as-is)
        """
        if self.metrics is None:
            result = await self.resolve(email, phone_number)
            return result.view
        return await observe_identify(self.metrics, lambda: self.resolve(email, phone_number))

    async def resolve(
        self,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> IdentifyResult:
        """Same as `identify`, returning the outcome instead of recording it."""
        email = email or None
        phone_number = phone_number or None

        if email is None and phone_number is None:
            raise ValidationError(message="At least one of email or phoneNumber must be provided")

        cluster = await self.find_cluster(email, phone_number)

        if not cluster:
            contact = await self.store.insert(
                email=email,
                phone_number=phone_number,
                linked_id=None,
                link_precedence=LinkPrecedence.PRIMARY,
            )
            logger.info("Created primary contact", contact_id=contact.id)
            return IdentifyResult(view=build_consolidated_view(contact), outcome="created_primary")

        primary_ids = reachable_primary_ids(cluster)
        primaries_by_age = (
            await self.store.find_by_ids_ordered_by_creation(primary_ids) if primary_ids else []
        )

        plan = plan_consolidation(cluster, primaries_by_age, email, phone_number)
        await self._apply(plan, email, phone_number)

        refreshed = await self.find_cluster(email, phone_number)
        view = build_consolidated_view(plan.canonical, refreshed)

        if plan.demote_ids:
            outcome = "merged"
        elif plan.create_secondary:
            outcome = "created_secondary"
        else:
            outcome = "unchanged"
        return IdentifyResult(view=view, outcome=outcome, demoted=len(plan.demote_ids))

    async def find_cluster(
        self,
        email: str | None,
        phone_number: str | None,
    ) -> list[ContactRecord]:
        """Direct matches plus their secondaries and the primaries they link to."""
        direct = await self.store.find_by_email_or_phone(email, phone_number)
        if not direct:
            return []

        direct_ids = {record.id for record in direct}
        linked_ids = {record.linked_id for record in direct if record.linked_id is not None}

        secondaries = await self.store.find_by_linked_ids(direct_ids)
        primaries = await self.store.find_by_ids(linked_ids) if linked_ids else []

        return unique_by_id(direct, secondaries, primaries)

    async def _apply(
        self,
        plan: ConsolidationPlan,
        email: str | None,
        phone_number: str | None,
    ) -> None:
        canonical_id = plan.canonical.id

        if plan.create_secondary:
            contact = await self.store.insert(
                email=email,
                phone_number=phone_number,
                linked_id=canonical_id,
                link_precedence=LinkPrecedence.SECONDARY,
            )
            logger.info(
                "Created secondary contact",
                contact_id=contact.id,
                primary_contact_id=canonical_id,
            )

        for demoted_id in plan.demote_ids:
            await self.store.update_link(
                demoted_id,
                linked_id=canonical_id,
                link_precedence=LinkPrecedence.SECONDARY,
            )
            # Secondaries of the demoted primary must not end up two hops away.
            await self.store.update_linked_id(demoted_id, canonical_id)

        if plan.demote_ids:
            logger.info(
                "Merged contact clusters",
                primary_contact_id=canonical_id,
                demoted_contact_ids=list(plan.demote_ids),
            )
