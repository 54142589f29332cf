"""Tests for DealService: proposal, attestation, appeal and settlement.

The end-to-end classes walk a deal through each closing path against the
real registry, a manual clock and fresh ledgers, checking balances at the
end. The guard classes check that each refusal leaves no trace.
"""

from __future__ import annotations

import uuid

import pytest

from staked_escrow.domain.enums import AgentRole, DealState, EventType
from staked_escrow.domain.exceptions import (
    ApplicationDeadlinePassedError,
    CallerMismatchError,
    DealCannotBeAppealedError,
    DealNotFoundError,
    InsufficientAllowanceError,
    InvalidBeneficiaryError,
    InvalidDealParametersError,
    InvalidDealResultError,
    InvalidStateTransitionError,
    NotRegisteredError,
)
from staked_escrow.domain.parameters import MAX_AMOUNT
from tests.conftest import (
    ARBITER,
    BUSINESS,
    CONTENT,
    DEAL_AMOUNT,
    DEAL_MANAGER,
    INFLUENCER,
    MODERATOR_1,
    MODERATOR_2,
    STRANGER,
    VALIDATOR,
    propose,
    stake,
)


# ---------------------------------------------------------------------------
# End-to-end paths
# ---------------------------------------------------------------------------


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_validated_deal_pays_influencer_and_validator(
        self, deals, token_ledger, clock, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock, amount=100)
        assert deal.state == DealState.CREATED.value
        assert token_ledger.balance_of(DEAL_MANAGER) == 100
        assert token_ledger.balance_of(BUSINESS) == 0

        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)
        settlement = await deals.withdraw_payment(INFLUENCER, deal.id)

        assert (settlement.fee_recipient, settlement.fee) == (VALIDATOR, 2)
        assert (settlement.payee, settlement.payout) == (INFLUENCER, 98)
        assert token_ledger.balance_of(VALIDATOR) == 2
        assert token_ledger.balance_of(INFLUENCER) == 98
        assert token_ledger.balance_of(DEAL_MANAGER) == 0

        closed = await deals.get_deal(deal.id)
        assert closed.state == DealState.CLOSED.value
        assert closed.fee_amount + closed.payout_amount == closed.amount

    @pytest.mark.asyncio
    async def test_second_withdrawal_fails(
        self, deals, token_ledger, clock, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, "VALIDATED")
        await deals.withdraw_payment(INFLUENCER, deal.id)

        with pytest.raises(InvalidStateTransitionError):
            await deals.withdraw_payment(INFLUENCER, deal.id)
        assert token_ledger.balance_of(INFLUENCER) == DEAL_AMOUNT * 98 // 100

    @pytest.mark.asyncio
    async def test_notification_trail(self, deals, token_ledger, clock, staked_validator) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)
        await deals.withdraw_payment(INFLUENCER, deal.id)

        events = await deals.get_events(deal.id)
        assert events[0].event_type == EventType.DEAL_PROPOSAL_CREATED.value
        assert [e.payload["state"] for e in events[1:]] == ["APPLIED", "VALIDATED", "CLOSED"]
        assert [e.actor for e in events] == [BUSINESS, INFLUENCER, VALIDATOR, INFLUENCER]


class TestRejectionAndAppeal:
    @pytest.mark.asyncio
    async def test_moderator_awards_business(
        self, deals, token_ledger, clock, staked_validator, staked_moderators
    ) -> None:
        deal = await propose(deals, token_ledger, clock, amount=100)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)

        appealed = await deals.appeal_deal(BUSINESS, deal.id)
        assert appealed.state == DealState.APPEAL.value

        settlement = await deals.submit_moderator_verdict(MODERATOR_1, deal.id, BUSINESS)

        assert (settlement.fee_recipient, settlement.fee) == (MODERATOR_1, 10)
        assert (settlement.payee, settlement.payout) == (BUSINESS, 90)
        assert token_ledger.balance_of(MODERATOR_1) == 10
        assert token_ledger.balance_of(BUSINESS) == 90
        assert token_ledger.balance_of(VALIDATOR) == 0

        closed = await deals.get_deal(deal.id)
        assert closed.state == DealState.CLOSED.value
        assert closed.moderator == MODERATOR_1
        assert closed.verdict_beneficiary == BUSINESS

    @pytest.mark.asyncio
    async def test_moderator_awards_influencer(
        self, deals, token_ledger, clock, staked_validator, staked_moderators
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)
        await deals.appeal_deal(BUSINESS, deal.id)

        await deals.submit_moderator_verdict(MODERATOR_2, deal.id, INFLUENCER)
        assert token_ledger.balance_of(INFLUENCER) == DEAL_AMOUNT * 9 // 10

    @pytest.mark.asyncio
    async def test_rejected_deal_cannot_be_withdrawn(
        self, deals, token_ledger, clock, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)

        with pytest.raises(InvalidStateTransitionError):
            await deals.withdraw_payment(INFLUENCER, deal.id)

    @pytest.mark.asyncio
    async def test_rejection_can_be_appealed_at_any_time(
        self, deals, token_ledger, clock, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)
        clock.advance(365 * 24 * 3600)

        appealed = await deals.appeal_deal(BUSINESS, deal.id)
        assert appealed.appealed_at == clock()


class TestSilentValidator:
    @pytest.mark.asyncio
    async def test_appeal_only_after_silence_window(
        self, deals, token_ledger, clock, params, staked_validator, staked_moderators
    ) -> None:
        deal = await propose(deals, token_ledger, clock, amount=100)
        created_at = clock()
        await deals.accept_deal(INFLUENCER, deal.id)

        with pytest.raises(DealCannotBeAppealedError):
            await deals.appeal_deal(BUSINESS, deal.id)

        # Exactly on the boundary is still too early
        clock.now = created_at + params.validator_silence_window
        with pytest.raises(DealCannotBeAppealedError):
            await deals.appeal_deal(BUSINESS, deal.id)

        clock.advance(1)
        await deals.appeal_deal(BUSINESS, deal.id)

        settlement = await deals.submit_moderator_verdict(MODERATOR_1, deal.id, BUSINESS)
        assert (settlement.fee, settlement.payout) == (10, 90)

    @pytest.mark.asyncio
    async def test_validator_cannot_attest_after_appeal(
        self, deals, token_ledger, clock, params, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        clock.advance(params.validator_silence_window + 1)
        await deals.appeal_deal(BUSINESS, deal.id)

        with pytest.raises(InvalidStateTransitionError):
            await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)

    @pytest.mark.asyncio
    async def test_late_attestation_still_allowed_before_appeal(
        self, deals, token_ledger, clock, params, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        clock.advance(params.validator_silence_window + 1)

        attested = await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)
        assert attested.state == DealState.VALIDATED.value
        with pytest.raises(DealCannotBeAppealedError):
            await deals.appeal_deal(BUSINESS, deal.id)

    @pytest.mark.asyncio
    async def test_unaccepted_deal_cannot_be_appealed(
        self, deals, token_ledger, clock, params
    ) -> None:
        deal = await propose(deals, token_ledger, clock, deadline_in=10 * params.deal_lifespan)
        clock.advance(params.validator_silence_window + 1)

        with pytest.raises(DealCannotBeAppealedError):
            await deals.appeal_deal(BUSINESS, deal.id)


class TestFeeConservation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [1, 49, 99_999, 100_001, 123_456_789_012_345])
    async def test_both_closing_paths_conserve_amount(
        self, deals, token_ledger, clock, staked_validator, staked_moderators, amount
    ) -> None:
        validated = await propose(deals, token_ledger, clock, amount=amount)
        await deals.accept_deal(INFLUENCER, validated.id)
        await deals.set_deal_result(VALIDATOR, validated.id, DealState.VALIDATED)
        first = await deals.withdraw_payment(INFLUENCER, validated.id)

        rejected = await propose(deals, token_ledger, clock, amount=amount)
        await deals.accept_deal(INFLUENCER, rejected.id)
        await deals.set_deal_result(VALIDATOR, rejected.id, DealState.REJECTED)
        await deals.appeal_deal(BUSINESS, rejected.id)
        second = await deals.submit_moderator_verdict(MODERATOR_1, rejected.id, INFLUENCER)

        for settlement, numerator in ((first, 2_000), (second, 10_000)):
            assert settlement.fee + settlement.payout == amount
            assert settlement.fee == amount * numerator // 100_000
        assert token_ledger.balance_of(DEAL_MANAGER) == 0


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


class TestCreateDealGuards:
    @pytest.mark.asyncio
    async def test_requires_prior_authorization(
        self, deals, session, token_ledger, clock
    ) -> None:
        token_ledger.mint(BUSINESS, DEAL_AMOUNT)
        with pytest.raises(InsufficientAllowanceError):
            await deals.create_deal(
                caller=BUSINESS,
                validator=VALIDATOR,
                influencer=INFLUENCER,
                content=CONTENT,
                application_deadline=clock() + 60,
                amount=DEAL_AMOUNT,
            )
        await session.rollback()
        assert await deals.list_deals_for(BUSINESS) == []
        assert token_ledger.balance_of(BUSINESS) == DEAL_AMOUNT

    @pytest.mark.asyncio
    async def test_oversized_amount_keeps_funds_with_business(
        self, deals, token_ledger, clock
    ) -> None:
        oversized = MAX_AMOUNT + 1
        token_ledger.mint(BUSINESS, oversized)
        token_ledger.approve(BUSINESS, DEAL_MANAGER, oversized)
        with pytest.raises(InvalidDealParametersError):
            await deals.create_deal(
                caller=BUSINESS,
                validator=VALIDATOR,
                influencer=INFLUENCER,
                content=CONTENT,
                application_deadline=clock() + 60,
                amount=oversized,
            )
        assert token_ledger.balance_of(BUSINESS) == oversized
        assert token_ledger.balance_of(DEAL_MANAGER) == 0
        assert token_ledger.allowance(BUSINESS, DEAL_MANAGER) == oversized

    @pytest.mark.asyncio
    async def test_largest_amount_is_escrowed(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock, amount=MAX_AMOUNT)
        assert deal.amount == MAX_AMOUNT
        assert token_ledger.balance_of(DEAL_MANAGER) == MAX_AMOUNT

    @pytest.mark.asyncio
    async def test_failed_recording_moves_no_funds(
        self, deals, session, token_ledger, clock, monkeypatch
    ) -> None:
        async def broken_record(**kwargs):
            raise RuntimeError("event log unavailable")

        monkeypatch.setattr(deals._event_repo, "record", broken_record)
        token_ledger.mint(BUSINESS, DEAL_AMOUNT)
        token_ledger.approve(BUSINESS, DEAL_MANAGER, DEAL_AMOUNT)
        with pytest.raises(RuntimeError):
            await deals.create_deal(
                caller=BUSINESS,
                validator=VALIDATOR,
                influencer=INFLUENCER,
                content=CONTENT,
                application_deadline=clock() + 60,
                amount=DEAL_AMOUNT,
            )
        await session.rollback()

        assert await deals.list_deals_for(BUSINESS) == []
        assert token_ledger.balance_of(BUSINESS) == DEAL_AMOUNT
        assert token_ledger.balance_of(DEAL_MANAGER) == 0
        assert token_ledger.allowance(BUSINESS, DEAL_MANAGER) == DEAL_AMOUNT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("content", "amount", "deadline_offset"),
        [
            (CONTENT, 0, 60),
            (CONTENT[:31], DEAL_AMOUNT, 60),
            (CONTENT + b"\x00", DEAL_AMOUNT, 60),
            (CONTENT, DEAL_AMOUNT, -1),
        ],
    )
    async def test_rejects_bad_parameters(
        self, deals, token_ledger, clock, content, amount, deadline_offset
    ) -> None:
        token_ledger.mint(BUSINESS, DEAL_AMOUNT)
        token_ledger.approve(BUSINESS, DEAL_MANAGER, DEAL_AMOUNT)
        with pytest.raises(InvalidDealParametersError):
            await deals.create_deal(
                caller=BUSINESS,
                validator=VALIDATOR,
                influencer=INFLUENCER,
                content=content,
                application_deadline=clock() + deadline_offset,
                amount=amount,
            )
        assert token_ledger.allowance(BUSINESS, DEAL_MANAGER) == DEAL_AMOUNT

    @pytest.mark.asyncio
    async def test_validator_need_not_be_registered_yet(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock)
        assert deal.validator == VALIDATOR
        assert deal.content == CONTENT

    @pytest.mark.asyncio
    async def test_listed_for_every_party(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock)
        for party in (BUSINESS, INFLUENCER, VALIDATOR):
            assert [d.id for d in await deals.list_deals_for(party)] == [deal.id]
        assert await deals.list_deals_for(STRANGER) == []


class TestAcceptGuards:
    @pytest.mark.asyncio
    async def test_only_influencer_accepts(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock)
        with pytest.raises(CallerMismatchError):
            await deals.accept_deal(STRANGER, deal.id)
        with pytest.raises(CallerMismatchError):
            await deals.accept_deal(BUSINESS, deal.id)

    @pytest.mark.asyncio
    async def test_deadline_is_inclusive(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock, deadline_in=60)
        clock.advance(60)
        accepted = await deals.accept_deal(INFLUENCER, deal.id)
        assert accepted.accepted_at == clock()

    @pytest.mark.asyncio
    async def test_after_deadline_rejected(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock, deadline_in=60)
        clock.advance(61)
        with pytest.raises(ApplicationDeadlinePassedError):
            await deals.accept_deal(INFLUENCER, deal.id)
        assert (await deals.get_deal(deal.id)).state == DealState.CREATED.value

    @pytest.mark.asyncio
    async def test_cannot_accept_twice(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        with pytest.raises(InvalidStateTransitionError):
            await deals.accept_deal(INFLUENCER, deal.id)

    @pytest.mark.asyncio
    async def test_unknown_deal(self, deals) -> None:
        with pytest.raises(DealNotFoundError):
            await deals.accept_deal(INFLUENCER, uuid.uuid4())


class TestResultGuards:
    @pytest.mark.asyncio
    async def test_only_named_validator_attests(
        self, deals, registry, token_ledger, native_ledger, clock, staked_validator
    ) -> None:
        await stake(registry, native_ledger, STRANGER, AgentRole.VALIDATOR)
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)

        with pytest.raises(CallerMismatchError):
            await deals.set_deal_result(STRANGER, deal.id, DealState.VALIDATED)

    @pytest.mark.asyncio
    async def test_deregistered_validator_cannot_attest(
        self, deals, registry, token_ledger, clock, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await registry.leave_as_agent(VALIDATOR)

        with pytest.raises(NotRegisteredError):
            await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)

    @pytest.mark.asyncio
    async def test_slashed_validator_cannot_attest(
        self, deals, registry, token_ledger, clock, staked_validator, staked_moderators
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        request = await registry.create_slash_request(MODERATOR_1, VALIDATOR)
        await registry.approve_slash_request(MODERATOR_2, request.id)
        await registry.execute_slash_request(ARBITER, request.id)

        with pytest.raises(NotRegisteredError):
            await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("result", ["CREATED", "APPEAL", "CLOSED", "APPROVED"])
    async def test_only_validated_or_rejected(
        self, deals, token_ledger, clock, staked_validator, result
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)

        with pytest.raises(InvalidDealResultError):
            await deals.set_deal_result(VALIDATOR, deal.id, result)
        assert (await deals.get_deal(deal.id)).state == DealState.APPLIED.value

    @pytest.mark.asyncio
    async def test_not_before_acceptance(self, deals, token_ledger, clock, staked_validator) -> None:
        deal = await propose(deals, token_ledger, clock)
        with pytest.raises(InvalidStateTransitionError):
            await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)

    @pytest.mark.asyncio
    async def test_result_is_final(self, deals, token_ledger, clock, staked_validator) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)
        with pytest.raises(InvalidStateTransitionError):
            await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)


class TestWithdrawAndAppealGuards:
    @pytest.mark.asyncio
    async def test_only_influencer_withdraws(
        self, deals, token_ledger, clock, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.VALIDATED)

        with pytest.raises(CallerMismatchError):
            await deals.withdraw_payment(BUSINESS, deal.id)
        assert token_ledger.balance_of(DEAL_MANAGER) == DEAL_AMOUNT

    @pytest.mark.asyncio
    async def test_only_business_appeals(
        self, deals, token_ledger, clock, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)

        with pytest.raises(CallerMismatchError):
            await deals.appeal_deal(INFLUENCER, deal.id)


class TestVerdictGuards:
    async def _appealed(self, deals, token_ledger, clock):
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)
        await deals.appeal_deal(BUSINESS, deal.id)
        return deal

    @pytest.mark.asyncio
    async def test_only_moderators_rule(
        self, deals, token_ledger, clock, staked_validator, staked_moderators
    ) -> None:
        deal = await self._appealed(deals, token_ledger, clock)
        with pytest.raises(NotRegisteredError):
            await deals.submit_moderator_verdict(VALIDATOR, deal.id, BUSINESS)

    @pytest.mark.asyncio
    async def test_beneficiary_must_be_a_party(
        self, deals, token_ledger, clock, staked_validator, staked_moderators
    ) -> None:
        deal = await self._appealed(deals, token_ledger, clock)
        with pytest.raises(InvalidBeneficiaryError):
            await deals.submit_moderator_verdict(MODERATOR_1, deal.id, VALIDATOR)
        assert token_ledger.balance_of(DEAL_MANAGER) == DEAL_AMOUNT

    @pytest.mark.asyncio
    async def test_not_before_appeal(
        self, deals, token_ledger, clock, staked_validator, staked_moderators
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)

        with pytest.raises(InvalidStateTransitionError):
            await deals.submit_moderator_verdict(MODERATOR_1, deal.id, BUSINESS)

    @pytest.mark.asyncio
    async def test_only_one_verdict(
        self, deals, token_ledger, clock, staked_validator, staked_moderators
    ) -> None:
        deal = await self._appealed(deals, token_ledger, clock)
        await deals.submit_moderator_verdict(MODERATOR_1, deal.id, BUSINESS)
        with pytest.raises(InvalidStateTransitionError):
            await deals.submit_moderator_verdict(MODERATOR_2, deal.id, INFLUENCER)


class TestStatus:
    @pytest.mark.asyncio
    async def test_created(self, deals, token_ledger, clock) -> None:
        deal = await propose(deals, token_ledger, clock)
        status = await deals.get_status(deal.id)

        assert status["state"] == "CREATED"
        assert status["allowed_events"] == ["influencer_accepts"]
        assert status["can_accept"] is True
        assert status["can_appeal"] is False

    @pytest.mark.asyncio
    async def test_applied_reports_silence_deadline(
        self, deals, token_ledger, clock, params, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        status = await deals.get_status(deal.id)

        assert status["appeal_available_at"] == deal.created_at + params.validator_silence_window + 1
        assert status["can_appeal"] is False

        clock.now = status["appeal_available_at"]
        assert (await deals.get_status(deal.id))["can_appeal"] is True

    @pytest.mark.asyncio
    async def test_appeal_reports_verdict_due(
        self, deals, token_ledger, clock, params, staked_validator
    ) -> None:
        deal = await propose(deals, token_ledger, clock)
        await deals.accept_deal(INFLUENCER, deal.id)
        await deals.set_deal_result(VALIDATOR, deal.id, DealState.REJECTED)
        await deals.appeal_deal(BUSINESS, deal.id)

        status = await deals.get_status(deal.id)
        assert status["state"] == "APPEAL"
        assert status["verdict_due_at"] == clock() + params.appeal_period
