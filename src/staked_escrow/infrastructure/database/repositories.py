"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Lookups that precede a mutation take ``for_update=True`` so the row is
locked for the rest of the unit of work on databases that support
SELECT ... FOR UPDATE (SQLite ignores the clause).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from staked_escrow.infrastructure.database.orm_models import (
    Agent,
    Deal,
    ProtocolEvent,
    SlashApproval,
    SlashRequest,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from staked_escrow.domain.enums import AgentRole, DealState, EventType


class AgentRepository:
    """Data access for staked agents."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, agent: Agent) -> Agent:
        """Insert a new agent entry."""
        self._session.add(agent)
        await self._session.flush()
        return agent

    async def get(self, address: str, for_update: bool = False) -> Agent | None:
        """Fetch the agent entry for an address, if any."""
        stmt = select(Agent).where(Agent.address == address)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_role(self, role: AgentRole) -> list[Agent]:
        """Fetch all agents holding a role, oldest first."""
        result = await self._session.execute(
            select(Agent).where(Agent.role == role.value).order_by(Agent.joined_at.asc())
        )
        return list(result.scalars().all())

    async def delete(self, agent: Agent) -> None:
        """Remove an agent entry (on leave or slash)."""
        await self._session.delete(agent)
        await self._session.flush()


class SlashRequestRepository:
    """Data access for slash requests and their approvals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, request: SlashRequest, approver: str) -> SlashRequest:
        """Insert a new slash request along with its requester's approval."""
        self._session.add(request)
        await self._session.flush()
        await self.add_approval(request.id, approver, approved_at=request.created_at)
        return request

    async def get_by_id(
        self, request_id: uuid.UUID, for_update: bool = False
    ) -> SlashRequest | None:
        """Fetch a slash request by its UUID."""
        stmt = select(SlashRequest).where(SlashRequest.id == request_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_open_for_target(self, target: str, now: int) -> SlashRequest | None:
        """Fetch the unexecuted, unexpired request against ``target``, if any."""
        result = await self._session.execute(
            select(SlashRequest)
            .where(
                SlashRequest.target == target,
                SlashRequest.executed.is_(False),
                SlashRequest.deadline >= now,
            )
            .order_by(SlashRequest.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_approval(
        self, request_id: uuid.UUID, approver: str, approved_at: int
    ) -> SlashApproval:
        """Record one moderator's approval (caller checks for duplicates)."""
        approval = SlashApproval(
            request_id=request_id,
            approver=approver,
            approved_at=approved_at,
        )
        self._session.add(approval)
        await self._session.flush()
        return approval

    async def has_approved(self, request_id: uuid.UUID, approver: str) -> bool:
        result = await self._session.execute(
            select(SlashApproval.id).where(
                SlashApproval.request_id == request_id,
                SlashApproval.approver == approver,
            )
        )
        return result.first() is not None

    async def count_approvals(self, request_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count(SlashApproval.id)).where(SlashApproval.request_id == request_id)
        )
        return int(result.scalar_one())

    async def list_approvers(self, request_id: uuid.UUID) -> list[str]:
        """Approver addresses in approval order."""
        result = await self._session.execute(
            select(SlashApproval.approver)
            .where(SlashApproval.request_id == request_id)
            .order_by(SlashApproval.approved_at.asc())
        )
        return list(result.scalars().all())

    async def mark_executed(
        self, request: SlashRequest, executed_at: int, forfeited: int
    ) -> SlashRequest:
        request.executed = True
        request.executed_at = executed_at
        request.forfeited_collateral = forfeited
        await self._session.flush()
        return request


class DealRepository:
    """Data access for deals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, deal: Deal) -> Deal:
        """Insert a new deal."""
        self._session.add(deal)
        await self._session.flush()
        return deal

    async def get_by_id(self, deal_id: uuid.UUID, for_update: bool = False) -> Deal | None:
        """Fetch a deal by its UUID."""
        stmt = select(Deal).where(Deal.id == deal_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_party(self, address: str) -> list[Deal]:
        """Fetch every deal an address takes part in, newest first."""
        result = await self._session.execute(
            select(Deal)
            .where(
                (Deal.business == address)
                | (Deal.influencer == address)
                | (Deal.validator == address)
            )
            .order_by(Deal.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_state(self, deal: Deal, new_state: DealState) -> Deal:
        """Update the state of a deal (call AFTER state machine validation)."""
        deal.state = new_state.value
        await self._session.flush()
        return deal


class EventRepository:
    """Data access for the append-only protocol notification log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        event_type: EventType,
        subject_id: str,
        actor: str,
        created_at: int,
        payload: dict | None = None,
    ) -> ProtocolEvent:
        """Append a new event. This is the ONLY write operation allowed."""
        evt = ProtocolEvent(
            event_type=event_type.value,
            subject_id=subject_id,
            actor=actor,
            payload=payload,
            created_at=created_at,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_subject(self, subject_id: str) -> list[ProtocolEvent]:
        """Fetch all events about one subject in emission order."""
        result = await self._session.execute(
            select(ProtocolEvent)
            .where(ProtocolEvent.subject_id == subject_id)
            .order_by(ProtocolEvent.id.asc())
        )
        return list(result.scalars().all())
