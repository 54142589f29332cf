"""Fee arithmetic for deal settlement.

Fees are expressed as a numerator over a large fixed denominator so that
fine-grained percentages never need fractional values. All arithmetic is on
non-negative integers, so floor division truncates toward zero and
fee + remainder always equals the settled amount.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FeeSplit:
    """The two legs of a settlement, in ledger base units."""

    fee: int
    remainder: int

    @property
    def total(self) -> int:
        return self.fee + self.remainder


def split_fee(amount: int, numerator: int, denominator: int) -> FeeSplit:
    """Split ``amount`` into a fee of ``numerator / denominator`` and the remainder.

    Raises:
        ValueError: If the amount is negative or the rate lies outside [0, 1].
    """
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    if denominator <= 0:
        raise ValueError(f"Fee denominator must be positive, got {denominator}")
    if not 0 <= numerator <= denominator:
        raise ValueError(
            f"Fee numerator must lie in [0, {denominator}], got {numerator}"
        )

    fee = amount * numerator // denominator
    return FeeSplit(fee=fee, remainder=amount - fee)


@dataclass(frozen=True)
class Settlement:
    """Record of how a closed deal's escrow was paid out."""

    deal_id: str
    fee_recipient: str
    fee: int
    payee: str
    payout: int

    def to_dict(self) -> dict:
        return {
            "deal_id": self.deal_id,
            "fee_recipient": self.fee_recipient,
            "fee": self.fee,
            "payee": self.payee,
            "payout": self.payout,
        }
