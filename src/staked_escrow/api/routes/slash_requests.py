"""Slash request REST API routes.

Routes:
    POST   /api/v1/slash-requests                  Moderator accuses an agent
    GET    /api/v1/slash-requests/{id}             Request details and approvals
    GET    /api/v1/slash-requests/{id}/events      Notification trail
    POST   /api/v1/slash-requests/{id}/approve     Moderator approves
    POST   /api/v1/slash-requests/{id}/execute     Arbiter executes after quorum
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from staked_escrow.api.deps import get_caller_address, get_registry_service
from staked_escrow.infrastructure.database.orm_models import SlashRequest
from staked_escrow.logging_config import get_logger
from staked_escrow.schemas.deals import ProtocolEventResponse
from staked_escrow.schemas.registry import CreateSlashRequestRequest, SlashRequestResponse
from staked_escrow.services.agent_registry_service import AgentRegistryService

router = APIRouter(prefix="/api/v1/slash-requests", tags=["Slashing"])
logger = get_logger(__name__)


async def _to_response(
    svc: AgentRegistryService, request: SlashRequest
) -> SlashRequestResponse:
    response = SlashRequestResponse.model_validate(request)
    response.approvals = await svc.get_approvals(request.id)
    response.is_open = svc.is_slash_request_open(request)
    return response


@router.post(
    "",
    response_model=SlashRequestResponse,
    status_code=201,
    summary="Open a slash request against an agent",
)
async def create_slash_request(
    body: CreateSlashRequestRequest,
    caller: str = Depends(get_caller_address),
    svc: AgentRegistryService = Depends(get_registry_service),
) -> SlashRequestResponse:
    """The requesting moderator's approval is recorded with the request."""
    request = await svc.create_slash_request(caller, body.target)
    return await _to_response(svc, request)


@router.get(
    "/{request_id}",
    response_model=SlashRequestResponse,
    summary="Get a slash request",
)
async def get_slash_request(
    request_id: uuid.UUID,
    svc: AgentRegistryService = Depends(get_registry_service),
) -> SlashRequestResponse:
    request = await svc.get_slash_request(request_id)
    return await _to_response(svc, request)


@router.get(
    "/{request_id}/events",
    response_model=list[ProtocolEventResponse],
    summary="Get a slash request's notification trail",
)
async def get_slash_request_events(
    request_id: uuid.UUID,
    svc: AgentRegistryService = Depends(get_registry_service),
) -> list[ProtocolEventResponse]:
    request = await svc.get_slash_request(request_id)
    events = await svc.get_events(str(request.id))
    return [ProtocolEventResponse.model_validate(event) for event in events]


@router.post(
    "/{request_id}/approve",
    response_model=SlashRequestResponse,
    summary="Approve an open slash request",
)
async def approve_slash_request(
    request_id: uuid.UUID,
    caller: str = Depends(get_caller_address),
    svc: AgentRegistryService = Depends(get_registry_service),
) -> SlashRequestResponse:
    request = await svc.approve_slash_request(caller, request_id)
    return await _to_response(svc, request)


@router.post(
    "/{request_id}/execute",
    response_model=SlashRequestResponse,
    summary="Execute a slash request (arbiter only)",
)
async def execute_slash_request(
    request_id: uuid.UUID,
    caller: str = Depends(get_caller_address),
    svc: AgentRegistryService = Depends(get_registry_service),
) -> SlashRequestResponse:
    """Removes the target's membership; the collateral stays in custody."""
    request = await svc.execute_slash_request(caller, request_id)
    return await _to_response(svc, request)
