"""Deal Service: core business logic for the deal escrow lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Registry membership (who may attest or arbitrate right now)
    - Repositories (data access)
    - The deal custody account (ValueLedger port)
    - Event log (notifications)

Ordering inside every operation:
    1. All guards: caller identity, membership, state, time windows, inputs.
    2. State effects, flushed to the session.
    3. Ledger interactions. A failing transfer propagates and the caller's
       unit of work rolls the state effects back.

Timeouts are re-derived from stored anchors on every call; nothing caches
an "expired" flag.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from staked_escrow.clock import Clock, system_clock
from staked_escrow.domain.enums import DEAL_RESULTS, AgentRole, DealState, EventType
from staked_escrow.domain.exceptions import (
    ApplicationDeadlinePassedError,
    CallerMismatchError,
    DealCannotBeAppealedError,
    DealNotFoundError,
    InvalidBeneficiaryError,
    InvalidDealParametersError,
    InvalidDealResultError,
    InvalidStateTransitionError,
    NotRegisteredError,
)
from staked_escrow.domain.fees import Settlement, split_fee
from staked_escrow.domain.parameters import MAX_AMOUNT, ProtocolParameters
from staked_escrow.domain.state_machine import DealStateMachine
from staked_escrow.infrastructure.database.orm_models import Deal
from staked_escrow.infrastructure.database.repositories import (
    DealRepository,
    EventRepository,
)
from staked_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from staked_escrow.domain.ledger_protocol import MembershipOracle, ValueLedger
    from staked_escrow.infrastructure.database.orm_models import ProtocolEvent

logger = get_logger(__name__)

CONTENT_LENGTH = 32


class DealService:
    """Manages the deal escrow lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        escrow: ValueLedger,
        registry: MembershipOracle,
        parameters: ProtocolParameters | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._session = session
        self._escrow = escrow
        self._registry = registry
        self._params = parameters or ProtocolParameters()
        self._clock = clock
        self._deal_repo = DealRepository(session)
        self._event_repo = EventRepository(session)

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    async def create_deal(
        self,
        caller: str,
        validator: str,
        influencer: str,
        content: bytes,
        application_deadline: int,
        amount: int,
    ) -> Deal:
        """Escrow ``amount`` from ``caller`` and propose a deal in CREATED state.

        The caller must have authorized the deal custody account to pull
        ``amount`` beforehand. Validator eligibility is not checked here; it is
        checked when the validator attests.
        """
        now = self._clock()
        if not 0 < amount <= MAX_AMOUNT:
            raise InvalidDealParametersError(
                f"Deal amount must lie in [1, {MAX_AMOUNT}], got {amount}"
            )
        if len(content) != CONTENT_LENGTH:
            raise InvalidDealParametersError(
                f"Deal content must be {CONTENT_LENGTH} bytes, got {len(content)}"
            )
        if application_deadline < now:
            raise InvalidDealParametersError(
                f"Application deadline {application_deadline} is already past ({now})"
            )

        deal = await self._deal_repo.create(
            Deal(
                business=caller,
                validator=validator,
                influencer=influencer,
                content=bytes(content),
                amount=amount,
                application_deadline=application_deadline,
                created_at=now,
                state=DealState.CREATED.value,
            )
        )

        await self._event_repo.record(
            event_type=EventType.DEAL_PROPOSAL_CREATED,
            subject_id=str(deal.id),
            actor=caller,
            created_at=now,
            payload={
                "business": caller,
                "validator": validator,
                "influencer": influencer,
                "amount": amount,
            },
        )
        await self._escrow.transfer_in(caller, amount)

        logger.info(
            "deal.created",
            deal_id=str(deal.id),
            business=caller,
            validator=validator,
            influencer=influencer,
            amount=amount,
        )
        return deal

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    async def accept_deal(self, caller: str, deal_id: uuid.UUID) -> Deal:
        """Influencer takes the deal on. Transitions CREATED -> APPLIED."""
        deal = await self._get_deal_or_raise(deal_id, for_update=True)
        self._require_party(deal, caller, "influencer")
        self._fire_transition(deal, "influencer_accepts")

        now = self._clock()
        if now > deal.application_deadline:
            raise ApplicationDeadlinePassedError(str(deal.id), deal.application_deadline)

        deal.accepted_at = now
        await self._change_state(deal, DealState.APPLIED, actor=caller, now=now)

        logger.info("deal.accepted", deal_id=str(deal.id), influencer=caller)
        return deal

    # ------------------------------------------------------------------
    # Attestation
    # ------------------------------------------------------------------

    async def set_deal_result(
        self, caller: str, deal_id: uuid.UUID, result: DealState | str
    ) -> Deal:
        """Validator attests VALIDATED or REJECTED. Transitions out of APPLIED."""
        deal = await self._get_deal_or_raise(deal_id, for_update=True)
        self._require_party(deal, caller, "validator")
        if not await self._registry.is_validator(caller):
            raise NotRegisteredError(caller, AgentRole.VALIDATOR.value)

        try:
            outcome = DealState(result)
        except ValueError as err:
            raise InvalidDealResultError(str(result)) from err
        if outcome not in DEAL_RESULTS:
            raise InvalidDealResultError(outcome.value)
        event_name = (
            "validator_validates" if outcome == DealState.VALIDATED else "validator_rejects"
        )
        self._fire_transition(deal, event_name)

        now = self._clock()
        deal.result = outcome.value
        deal.result_submitted_at = now
        await self._change_state(deal, outcome, actor=caller, now=now)

        logger.info("deal.result_set", deal_id=str(deal.id), validator=caller, result=outcome.value)
        return deal

    # ------------------------------------------------------------------
    # Settlement on validation
    # ------------------------------------------------------------------

    async def withdraw_payment(self, caller: str, deal_id: uuid.UUID) -> Settlement:
        """Influencer collects a validated deal; the validator takes its fee."""
        deal = await self._get_deal_or_raise(deal_id, for_update=True)
        self._require_party(deal, caller, "influencer")
        self._fire_transition(deal, "payment_withdrawn")

        split = split_fee(
            deal.amount,
            self._params.validator_fee_numerator,
            self._params.fee_denominator,
        )
        settlement = Settlement(
            deal_id=str(deal.id),
            fee_recipient=deal.validator,
            fee=split.fee,
            payee=deal.influencer,
            payout=split.remainder,
        )
        await self._close(deal, settlement, actor=caller)

        logger.info("deal.payment_withdrawn", **settlement.to_dict())
        return settlement

    # ------------------------------------------------------------------
    # Appeal
    # ------------------------------------------------------------------

    async def appeal_deal(self, caller: str, deal_id: uuid.UUID) -> Deal:
        """Business escalates to moderator arbitration.

        Allowed once the validator rejected the deal, or once the validator
        has stayed silent past the window measured from deal creation.
        """
        deal = await self._get_deal_or_raise(deal_id, for_update=True)
        self._require_party(deal, caller, "business")

        now = self._clock()
        if not self._can_appeal(deal, now):
            raise DealCannotBeAppealedError(str(deal.id), deal.state)
        self._fire_transition(deal, "business_appeals")

        deal.appealed_at = now
        await self._change_state(deal, DealState.APPEAL, actor=caller, now=now)

        logger.info(
            "deal.appealed",
            deal_id=str(deal.id),
            business=caller,
            after_rejection=deal.result == DealState.REJECTED.value,
        )
        return deal

    async def submit_moderator_verdict(
        self, caller: str, deal_id: uuid.UUID, beneficiary: str
    ) -> Settlement:
        """A moderator rules an appealed deal; the moderator takes its fee."""
        if not await self._registry.is_moderator(caller):
            raise NotRegisteredError(caller, AgentRole.MODERATOR.value)

        deal = await self._get_deal_or_raise(deal_id, for_update=True)
        self._fire_transition(deal, "moderator_rules")
        if beneficiary not in (deal.business, deal.influencer):
            raise InvalidBeneficiaryError(str(deal.id), beneficiary)

        split = split_fee(
            deal.amount,
            self._params.moderator_fee_numerator,
            self._params.fee_denominator,
        )
        settlement = Settlement(
            deal_id=str(deal.id),
            fee_recipient=caller,
            fee=split.fee,
            payee=beneficiary,
            payout=split.remainder,
        )
        deal.moderator = caller
        deal.verdict_beneficiary = beneficiary
        await self._close(deal, settlement, actor=caller)

        logger.info("deal.verdict_submitted", moderator=caller, **settlement.to_dict())
        return settlement

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_deal(self, deal_id: uuid.UUID) -> Deal:
        """Get a deal or raise."""
        return await self._get_deal_or_raise(deal_id)

    async def get_status(self, deal_id: uuid.UUID) -> dict:
        """Get deal state with allowed events and the time-derived windows."""
        deal = await self._get_deal_or_raise(deal_id)
        now = self._clock()
        sm = DealStateMachine(current_state=deal.state)

        appeal_available_at = None
        if deal.state == DealState.REJECTED.value:
            appeal_available_at = deal.result_submitted_at
        elif deal.state == DealState.APPLIED.value:
            appeal_available_at = self._silence_deadline(deal) + 1

        verdict_due_at = None
        if deal.appealed_at is not None:
            verdict_due_at = deal.appealed_at + self._params.appeal_period

        return {
            "deal_id": str(deal.id),
            "state": deal.state,
            "allowed_events": sm.get_allowed_events(),
            "can_accept": (
                deal.state == DealState.CREATED.value and now <= deal.application_deadline
            ),
            "can_appeal": self._can_appeal(deal, now),
            "appeal_available_at": appeal_available_at,
            "verdict_due_at": verdict_due_at,
        }

    async def get_events(self, deal_id: uuid.UUID) -> list[ProtocolEvent]:
        """Get the notification trail for a deal."""
        deal = await self._get_deal_or_raise(deal_id)
        return await self._event_repo.get_by_subject(str(deal.id))

    async def list_deals_for(self, address: str) -> list[Deal]:
        return await self._deal_repo.get_by_party(address)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_deal_or_raise(self, deal_id: uuid.UUID, for_update: bool = False) -> Deal:
        deal = await self._deal_repo.get_by_id(deal_id, for_update=for_update)
        if deal is None:
            raise DealNotFoundError(str(deal_id))
        return deal

    @staticmethod
    def _require_party(deal: Deal, caller: str, party: str) -> None:
        if getattr(deal, party) != caller:
            raise CallerMismatchError(str(deal.id), caller, party)

    def _silence_deadline(self, deal: Deal) -> int:
        return deal.created_at + self._params.validator_silence_window

    def _can_appeal(self, deal: Deal, now: int) -> bool:
        if deal.state == DealState.REJECTED.value:
            return True
        return (
            deal.state == DealState.APPLIED.value
            and deal.result is None
            and now > self._silence_deadline(deal)
        )

    async def _change_state(
        self, deal: Deal, new_state: DealState, actor: str, now: int
    ) -> None:
        await self._deal_repo.update_state(deal, new_state)
        await self._event_repo.record(
            event_type=EventType.DEAL_STATE_CHANGED,
            subject_id=str(deal.id),
            actor=actor,
            created_at=now,
            payload={"state": new_state.value},
        )

    async def _close(self, deal: Deal, settlement: Settlement, actor: str) -> None:
        """Record the settlement, move to CLOSED, then pay both legs from escrow."""
        now = self._clock()
        deal.fee_recipient = settlement.fee_recipient
        deal.fee_amount = settlement.fee
        deal.payout_recipient = settlement.payee
        deal.payout_amount = settlement.payout
        deal.closed_at = now
        await self._change_state(deal, DealState.CLOSED, actor=actor, now=now)

        await self._escrow.transfer_out(settlement.fee_recipient, settlement.fee)
        await self._escrow.transfer_out(settlement.payee, settlement.payout)

    @staticmethod
    def _fire_transition(deal: Deal, event_name: str) -> None:
        """Validate a state machine transition without applying it.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        from statemachine.exceptions import TransitionNotAllowed

        sm = DealStateMachine(current_state=deal.state)
        event_method = getattr(sm, event_name, None)
        if event_method is None:
            raise InvalidStateTransitionError(deal.state, event_name)
        try:
            event_method()
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(deal.state, event_name) from err
