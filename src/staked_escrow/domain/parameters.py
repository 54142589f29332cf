"""Protocol parameters fixed at deployment.

Built once from Settings (see config.py) and handed to the services. Durations
are in seconds, amounts in ledger base units.
"""

from __future__ import annotations

from dataclasses import dataclass

from staked_escrow.domain.enums import AgentRole

DAY = 24 * 60 * 60
WEEK = 7 * DAY

# Largest amount a BIGINT column stores
MAX_AMOUNT = 2**63 - 1


@dataclass(frozen=True)
class ProtocolParameters:
    """Constants governing staking, slashing and deal settlement.

    Attributes:
        validator_stake: Exact collateral a validator deposits.
        moderator_stake: Exact collateral a moderator deposits.
        slash_review_window: Lifetime of a slash request from creation.
        slash_approval_quorum: Distinct moderator approvals needed to execute,
            the requester's own approval included.
        deal_lifespan: Time a deal is expected to run before attestation.
        validate_period: Grace period for the validator after the lifespan.
        appeal_period: Time a moderator is expected to rule after an appeal.
        validator_fee_numerator: Validator fee over fee_denominator.
        moderator_fee_numerator: Moderator fee over fee_denominator.
        fee_denominator: Shared fee denominator.
    """

    validator_stake: int = 100_000_000
    moderator_stake: int = 500_000_000
    slash_review_window: int = WEEK
    slash_approval_quorum: int = 2
    deal_lifespan: int = 2 * WEEK
    validate_period: int = 10 * 60
    appeal_period: int = WEEK
    validator_fee_numerator: int = 2_000
    moderator_fee_numerator: int = 10_000
    fee_denominator: int = 100_000

    def __post_init__(self) -> None:
        if self.validator_stake <= 0 or self.moderator_stake <= 0:
            raise ValueError("Stake amounts must be positive")
        if self.validator_stake == self.moderator_stake:
            raise ValueError("Validator and moderator stakes must differ")
        if self.slash_approval_quorum < 1:
            raise ValueError("Slash approval quorum must be at least 1")
        if self.fee_denominator <= 0:
            raise ValueError("Fee denominator must be positive")
        for name in ("validator_fee_numerator", "moderator_fee_numerator"):
            value = getattr(self, name)
            if not 0 <= value <= self.fee_denominator:
                raise ValueError(f"{name} must lie in [0, {self.fee_denominator}]")
        for name in (
            "slash_review_window",
            "deal_lifespan",
            "validate_period",
            "appeal_period",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    def stake_for(self, role: AgentRole) -> int:
        """Return the exact collateral required for ``role``."""
        if role == AgentRole.VALIDATOR:
            return self.validator_stake
        return self.moderator_stake

    @property
    def validator_silence_window(self) -> int:
        """Time after deal creation past which an unattested deal may be appealed."""
        return self.deal_lifespan + self.validate_period
