"""
Identify API Route

Single entry point of the service: consolidate an (email, phoneNumber)
submission into its contact cluster.
"""

import structlog
from fastapi import APIRouter, Depends

from reconciliation.identity import (
    IdentifyRequest,
    IdentifyResponse,
    IdentifyResult,
    Reconciler,
    observe_identify,
)
from reconciliation.identity.store import StoreProvider, get_store_provider
from reconciliation.monitoring.metrics import get_metrics

logger = structlog.get_logger()

router = APIRouter()


@router.post(
    "/identify",
    response_model=IdentifyResponse,
    responses={
        400: {"description": "Neither email nor phoneNumber was provided"},
        503: {"description": "Contact store unavailable"},
    },
)
async def identify(
    request: IdentifyRequest,
    store_provider: StoreProvider = Depends(get_store_provider),
) -> IdentifyResponse:
    """
    Resolve a contact submission to its consolidated identity.

    Creates a primary contact for unseen identifiers, a secondary contact when
    the submission adds an email or phone to a known cluster, and merges
    clusters that the submission connects.
    """

    async def resolve_committed() -> IdentifyResult:
        # The provider commits on exit, before the outcome is recorded.
        async with store_provider() as store:
            return await Reconciler(store).resolve(request.email, request.phone_number)

    view = await observe_identify(get_metrics(), resolve_committed)
    return IdentifyResponse(contact=view)
