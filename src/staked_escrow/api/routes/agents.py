"""Agent Registry REST API routes: staking and membership.

Routes:
    GET    /api/v1/agents/stake/{role}             Stake required for a role
    GET    /api/v1/agents?role=                    List agents holding a role
    POST   /api/v1/agents                          Join as validator or moderator
    DELETE /api/v1/agents/me                       Leave and take back collateral
    GET    /api/v1/agents/{address}                Get an agent entry
    GET    /api/v1/agents/{address}/membership     Membership predicates
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from staked_escrow.api.deps import get_caller_address, get_registry_service
from staked_escrow.domain.enums import AgentRole
from staked_escrow.logging_config import get_logger
from staked_escrow.schemas.registry import (
    AgentResponse,
    JoinAgentRequest,
    LeaveAgentResponse,
    MembershipResponse,
    StakeAmountResponse,
)
from staked_escrow.services.agent_registry_service import AgentRegistryService

router = APIRouter(prefix="/api/v1/agents", tags=["Agents"])
logger = get_logger(__name__)


@router.get(
    "/stake/{role}",
    response_model=StakeAmountResponse,
    summary="Collateral required to join in a role",
)
async def get_stake_amount(
    role: AgentRole,
    svc: AgentRegistryService = Depends(get_registry_service),
) -> StakeAmountResponse:
    return StakeAmountResponse(role=role, amount=svc.get_stake_amount(role))


@router.get(
    "",
    response_model=list[AgentResponse],
    summary="List agents holding a role",
)
async def list_agents(
    role: AgentRole,
    svc: AgentRegistryService = Depends(get_registry_service),
) -> list[AgentResponse]:
    agents = await svc.list_agents(role)
    return [AgentResponse.model_validate(agent) for agent in agents]


@router.post(
    "",
    response_model=AgentResponse,
    status_code=201,
    summary="Stake collateral and join as an agent",
)
async def join_as_agent(
    request: JoinAgentRequest,
    caller: str = Depends(get_caller_address),
    svc: AgentRegistryService = Depends(get_registry_service),
) -> AgentResponse:
    """Register the caller. The deposit must equal the role's stake exactly."""
    agent = await svc.join_as_agent(caller, request.role, request.deposit)
    return AgentResponse.model_validate(agent)


@router.delete(
    "/me",
    response_model=LeaveAgentResponse,
    summary="Leave the registry and reclaim collateral",
)
async def leave_as_agent(
    caller: str = Depends(get_caller_address),
    svc: AgentRegistryService = Depends(get_registry_service),
) -> LeaveAgentResponse:
    refund = await svc.leave_as_agent(caller)
    return LeaveAgentResponse(address=caller, refund=refund)


@router.get(
    "/{address}",
    response_model=AgentResponse,
    summary="Get an agent entry",
)
async def get_agent(
    address: str,
    svc: AgentRegistryService = Depends(get_registry_service),
) -> AgentResponse:
    agent = await svc.get_agent(address)
    return AgentResponse.model_validate(agent)


@router.get(
    "/{address}/membership",
    response_model=MembershipResponse,
    summary="Check validator and moderator membership",
)
async def get_membership(
    address: str,
    svc: AgentRegistryService = Depends(get_registry_service),
) -> MembershipResponse:
    return MembershipResponse(
        address=address,
        is_validator=await svc.is_validator(address),
        is_moderator=await svc.is_moderator(address),
    )
