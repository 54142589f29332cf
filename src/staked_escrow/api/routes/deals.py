"""Deal REST API routes.

These endpoints provide the HTTP interface for proposing deals, moving
them through the lifecycle, and settling them. The simulation script calls
the same service layer, ensuring consistency.

Routes:
    POST   /api/v1/deals                  Propose a deal (escrows the amount)
    GET    /api/v1/deals?party=           List deals an address is party to
    GET    /api/v1/deals/{id}             Get deal details
    GET    /api/v1/deals/{id}/status      Lightweight status check
    GET    /api/v1/deals/{id}/events      Notification trail
    POST   /api/v1/deals/{id}/accept      Influencer accepts
    POST   /api/v1/deals/{id}/result      Validator attests VALIDATED/REJECTED
    POST   /api/v1/deals/{id}/withdraw    Influencer collects a validated deal
    POST   /api/v1/deals/{id}/appeal      Business escalates to moderators
    POST   /api/v1/deals/{id}/verdict     Moderator decides an appealed deal
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from staked_escrow.api.deps import get_caller_address, get_deal_service
from staked_escrow.logging_config import get_logger
from staked_escrow.schemas.deals import (
    CreateDealRequest,
    DealResponse,
    DealStatusResponse,
    ModeratorVerdictRequest,
    ProtocolEventResponse,
    SetDealResultRequest,
    SettlementResponse,
)
from staked_escrow.services.deal_service import DealService

router = APIRouter(prefix="/api/v1/deals", tags=["Deals"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=DealResponse,
    status_code=201,
    summary="Propose a deal",
)
async def create_deal(
    request: CreateDealRequest,
    caller: str = Depends(get_caller_address),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    """Pull the amount from the caller into escrow and create the deal in CREATED state."""
    deal = await svc.create_deal(
        caller=caller,
        validator=request.validator,
        influencer=request.influencer,
        content=request.content_bytes,
        application_deadline=request.application_deadline,
        amount=request.amount,
    )
    return DealResponse.model_validate(deal)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[DealResponse],
    summary="List deals for a party",
)
async def list_deals(
    party: str,
    svc: DealService = Depends(get_deal_service),
) -> list[DealResponse]:
    deals = await svc.list_deals_for(party)
    return [DealResponse.model_validate(deal) for deal in deals]


@router.get(
    "/{deal_id}",
    response_model=DealResponse,
    summary="Get deal details",
)
async def get_deal(
    deal_id: uuid.UUID,
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    deal = await svc.get_deal(deal_id)
    return DealResponse.model_validate(deal)


@router.get(
    "/{deal_id}/status",
    response_model=DealStatusResponse,
    summary="Check deal status",
)
async def get_deal_status(
    deal_id: uuid.UUID,
    svc: DealService = Depends(get_deal_service),
) -> DealStatusResponse:
    """Current state plus which actions the clock currently allows."""
    status = await svc.get_status(deal_id)
    return DealStatusResponse(**status)


@router.get(
    "/{deal_id}/events",
    response_model=list[ProtocolEventResponse],
    summary="Get a deal's notification trail",
)
async def get_deal_events(
    deal_id: uuid.UUID,
    svc: DealService = Depends(get_deal_service),
) -> list[ProtocolEventResponse]:
    events = await svc.get_events(deal_id)
    return [ProtocolEventResponse.model_validate(event) for event in events]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/{deal_id}/accept",
    response_model=DealResponse,
    summary="Influencer accepts the deal",
)
async def accept_deal(
    deal_id: uuid.UUID,
    caller: str = Depends(get_caller_address),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    """Transitions CREATED -> APPLIED while the application deadline holds."""
    deal = await svc.accept_deal(caller, deal_id)
    return DealResponse.model_validate(deal)


@router.post(
    "/{deal_id}/result",
    response_model=DealResponse,
    summary="Validator attests the outcome",
)
async def set_deal_result(
    deal_id: uuid.UUID,
    request: SetDealResultRequest,
    caller: str = Depends(get_caller_address),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    """Transitions APPLIED -> VALIDATED or APPLIED -> REJECTED."""
    deal = await svc.set_deal_result(caller, deal_id, request.result)
    return DealResponse.model_validate(deal)


@router.post(
    "/{deal_id}/withdraw",
    response_model=SettlementResponse,
    summary="Influencer collects a validated deal",
)
async def withdraw_payment(
    deal_id: uuid.UUID,
    caller: str = Depends(get_caller_address),
    svc: DealService = Depends(get_deal_service),
) -> SettlementResponse:
    """Pays the validator fee and the remainder, then closes the deal."""
    settlement = await svc.withdraw_payment(caller, deal_id)
    return SettlementResponse(**settlement.to_dict())


@router.post(
    "/{deal_id}/appeal",
    response_model=DealResponse,
    summary="Business appeals to the moderators",
)
async def appeal_deal(
    deal_id: uuid.UUID,
    caller: str = Depends(get_caller_address),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    """Allowed after a rejection, or once the validator has stayed silent too long."""
    deal = await svc.appeal_deal(caller, deal_id)
    return DealResponse.model_validate(deal)


@router.post(
    "/{deal_id}/verdict",
    response_model=SettlementResponse,
    summary="Moderator rules on an appealed deal",
)
async def submit_moderator_verdict(
    deal_id: uuid.UUID,
    request: ModeratorVerdictRequest,
    caller: str = Depends(get_caller_address),
    svc: DealService = Depends(get_deal_service),
) -> SettlementResponse:
    """Pays the moderator fee and the remainder to the chosen party, then closes the deal."""
    settlement = await svc.submit_moderator_verdict(caller, deal_id, request.beneficiary)
    return SettlementResponse(**settlement.to_dict())
