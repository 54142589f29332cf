"""Agent Registry Service: staking, membership and peer slashing.

This is the application layer that coordinates between:
    - Protocol parameters (stake amounts, review window, quorum)
    - Repositories (agents, slash requests, approvals)
    - The collateral custody account (ValueLedger port)
    - Event log (notifications)

Every operation checks all of its preconditions before touching state or
moving collateral. Both REST routes and the simulation call into this
service, ensuring a single source of truth for registry rules.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from staked_escrow.clock import Clock, system_clock
from staked_escrow.domain.enums import AgentRole, EventType
from staked_escrow.domain.exceptions import (
    AgentNotFoundError,
    AlreadyRegisteredError,
    DuplicateSlashRequestError,
    InvalidStakeAmountError,
    NotArbiterError,
    NotRegisteredError,
    PendingSlashRequestError,
    QuorumNotReachedError,
    SlashRequestClosedError,
    SlashRequestNotFoundError,
)
from staked_escrow.domain.parameters import ProtocolParameters
from staked_escrow.infrastructure.database.orm_models import Agent, SlashRequest
from staked_escrow.infrastructure.database.repositories import (
    AgentRepository,
    EventRepository,
    SlashRequestRepository,
)
from staked_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from staked_escrow.domain.ledger_protocol import ValueLedger
    from staked_escrow.infrastructure.database.orm_models import ProtocolEvent

logger = get_logger(__name__)


class AgentRegistryService:
    """Manages agent membership, collateral and slash requests."""

    def __init__(
        self,
        session: AsyncSession,
        collateral: ValueLedger,
        arbiter: str,
        parameters: ProtocolParameters | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._session = session
        self._collateral = collateral
        self._arbiter = arbiter
        self._params = parameters or ProtocolParameters()
        self._clock = clock
        self._agent_repo = AgentRepository(session)
        self._slash_repo = SlashRequestRepository(session)
        self._event_repo = EventRepository(session)

    @property
    def arbiter(self) -> str:
        return self._arbiter

    # ------------------------------------------------------------------
    # Staking
    # ------------------------------------------------------------------

    def get_stake_amount(self, role: AgentRole) -> int:
        """Exact collateral required to join as ``role``."""
        return self._params.stake_for(role)

    async def join_as_agent(self, caller: str, role: AgentRole, deposited_amount: int) -> Agent:
        """Register ``caller`` in ``role``, taking ``deposited_amount`` into custody."""
        existing = await self._agent_repo.get(caller, for_update=True)
        if existing is not None:
            raise AlreadyRegisteredError(caller, existing.role)

        required = self.get_stake_amount(role)
        if deposited_amount != required:
            raise InvalidStakeAmountError(role.value, required, deposited_amount)

        now = self._clock()
        agent = await self._agent_repo.create(
            Agent(address=caller, role=role.value, collateral=deposited_amount, joined_at=now)
        )

        await self._event_repo.record(
            event_type=EventType.AGENT_JOINED,
            subject_id=caller,
            actor=caller,
            created_at=now,
            payload={"role": role.value, "collateral": deposited_amount},
        )
        await self._collateral.transfer_in(caller, deposited_amount)

        logger.info("registry.agent_joined", address=caller, role=role.value, stake=required)
        return agent

    async def leave_as_agent(self, caller: str) -> int:
        """Deregister ``caller`` and refund their collateral. Returns the refund."""
        agent = await self._agent_repo.get(caller, for_update=True)
        if agent is None:
            raise NotRegisteredError(caller)

        now = self._clock()
        pending = await self._slash_repo.find_open_for_target(caller, now)
        if pending is not None:
            raise PendingSlashRequestError(caller, str(pending.id))

        refund = agent.collateral
        role = agent.role
        await self._agent_repo.delete(agent)

        await self._event_repo.record(
            event_type=EventType.AGENT_LEFT,
            subject_id=caller,
            actor=caller,
            created_at=now,
            payload={"role": role, "refund": refund},
        )
        await self._collateral.transfer_out(caller, refund)

        logger.info("registry.agent_left", address=caller, role=role, refund=refund)
        return refund

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def is_validator(self, address: str) -> bool:
        return await self._has_role(address, AgentRole.VALIDATOR)

    async def is_moderator(self, address: str) -> bool:
        return await self._has_role(address, AgentRole.MODERATOR)

    async def get_agent(self, address: str) -> Agent:
        agent = await self._agent_repo.get(address)
        if agent is None:
            raise AgentNotFoundError(address)
        return agent

    async def list_agents(self, role: AgentRole) -> list[Agent]:
        return await self._agent_repo.list_by_role(role)

    # ------------------------------------------------------------------
    # Slashing
    # ------------------------------------------------------------------

    async def create_slash_request(self, caller: str, target: str) -> SlashRequest:
        """Open an accusation against ``target``; the requester's approval is implied."""
        await self._require_moderator(caller)

        if await self._agent_repo.get(target) is None:
            raise AgentNotFoundError(target)

        now = self._clock()
        existing = await self._slash_repo.find_open_for_target(target, now)
        if existing is not None:
            raise DuplicateSlashRequestError(target, str(existing.id))

        request = await self._slash_repo.create(
            SlashRequest(
                target=target,
                requester=caller,
                created_at=now,
                deadline=now + self._params.slash_review_window,
                executed=False,
            ),
            approver=caller,
        )

        await self._event_repo.record(
            event_type=EventType.SLASH_REQUEST_CREATED,
            subject_id=str(request.id),
            actor=caller,
            created_at=now,
            payload={"target": target, "deadline": request.deadline},
        )

        logger.info(
            "registry.slash_request_created",
            request_id=str(request.id),
            target=target,
            requester=caller,
            deadline=request.deadline,
        )
        return request

    async def approve_slash_request(self, caller: str, request_id: uuid.UUID) -> SlashRequest:
        """Record ``caller``'s approval; repeating it is a no-op."""
        await self._require_moderator(caller)

        now = self._clock()
        request = await self._slash_repo.get_by_id(request_id, for_update=True)
        if request is None or not request.is_open(now):
            raise SlashRequestNotFoundError(str(request_id))

        if await self._slash_repo.has_approved(request.id, caller):
            logger.debug("registry.slash_approval_repeated", request_id=str(request_id), by=caller)
            return request

        await self._slash_repo.add_approval(request.id, caller, approved_at=now)

        await self._event_repo.record(
            event_type=EventType.SLASH_REQUEST_APPROVED,
            subject_id=str(request.id),
            actor=caller,
            created_at=now,
        )

        logger.info("registry.slash_request_approved", request_id=str(request_id), by=caller)
        return request

    async def execute_slash_request(self, caller: str, request_id: uuid.UUID) -> SlashRequest:
        """Remove the target's membership and keep their collateral (arbiter only)."""
        if caller != self._arbiter:
            raise NotArbiterError(caller)

        request = await self._slash_repo.get_by_id(request_id, for_update=True)
        if request is None:
            raise SlashRequestNotFoundError(str(request_id))

        now = self._clock()
        if request.executed:
            raise SlashRequestClosedError(str(request_id), "already executed")
        if now > request.deadline:
            raise SlashRequestClosedError(str(request_id), "review window expired")

        approvals = await self._slash_repo.count_approvals(request.id)
        quorum = self._params.slash_approval_quorum
        if approvals < quorum:
            raise QuorumNotReachedError(str(request_id), approvals, quorum)

        target = await self._agent_repo.get(request.target, for_update=True)
        if target is None:
            raise AgentNotFoundError(request.target)

        forfeited = target.collateral
        await self._agent_repo.delete(target)
        await self._slash_repo.mark_executed(request, executed_at=now, forfeited=forfeited)

        await self._event_repo.record(
            event_type=EventType.SLASH_EXECUTED,
            subject_id=str(request.id),
            actor=caller,
            created_at=now,
            payload={"target": request.target, "forfeited": forfeited},
        )

        logger.warning(
            "registry.slash_executed",
            request_id=str(request_id),
            target=request.target,
            forfeited=forfeited,
            approvals=approvals,
        )
        return request

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_slash_request(self, request_id: uuid.UUID) -> SlashRequest:
        request = await self._slash_repo.get_by_id(request_id)
        if request is None:
            raise SlashRequestNotFoundError(str(request_id))
        return request

    async def get_approvals(self, request_id: uuid.UUID) -> list[str]:
        request = await self.get_slash_request(request_id)
        return await self._slash_repo.list_approvers(request.id)

    def is_slash_request_open(self, request: SlashRequest) -> bool:
        return request.is_open(self._clock())

    async def get_events(self, subject_id: str) -> list[ProtocolEvent]:
        return await self._event_repo.get_by_subject(subject_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _has_role(self, address: str, role: AgentRole) -> bool:
        agent = await self._agent_repo.get(address)
        return agent is not None and agent.role == role.value

    async def _require_moderator(self, address: str) -> None:
        if not await self.is_moderator(address):
            raise NotRegisteredError(address, AgentRole.MODERATOR.value)
