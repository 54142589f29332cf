"""Simulated fungible-value ledger.

The real ledger is an external service; this module provides an in-process
stand-in with the same guarantees (atomic transfers, authorize-then-pull
allowances) for development, tests and the simulation script, plus the
EscrowAccount adapter that implements the ValueLedger port for one custody
address.

Two custody styles are supported:
    - pull_via_allowance=True: the sender must have called approve() for the
      custody address first (token escrow for deals).
    - pull_via_allowance=False: the deposit is attached to the call itself and
      debited directly from the sender (native-value collateral for agents).
"""

from __future__ import annotations

from collections import defaultdict

from staked_escrow.domain.exceptions import (
    InsufficientAllowanceError,
    InsufficientFundsError,
    LedgerError,
)
from staked_escrow.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryLedger:
    """Balances and allowances held in process memory."""

    def __init__(self, symbol: str = "USDT") -> None:
        self.symbol = symbol
        self._balances: dict[str, int] = defaultdict(int)
        self._allowances: dict[tuple[str, str], int] = defaultdict(int)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def mint(self, account: str, amount: int) -> None:
        """Create ``amount`` new units in ``account`` (simulation only)."""
        _require_non_negative(amount)
        self._balances[account] += amount
        logger.debug("ledger.minted", symbol=self.symbol, account=account, amount=amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Authorize ``spender`` to pull up to ``amount`` from ``owner``."""
        _require_non_negative(amount)
        self._allowances[(owner, spender)] = amount
        logger.debug("ledger.approved", owner=owner, spender=spender, amount=amount)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move ``amount`` from ``sender`` to ``recipient``; all or nothing."""
        _require_non_negative(amount)
        available = self.balance_of(sender)
        if available < amount:
            raise InsufficientFundsError(sender, amount, available)
        self._balances[sender] -= amount
        self._balances[recipient] += amount

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        """Pull ``amount`` from ``owner`` on ``spender``'s allowance; all or nothing."""
        _require_non_negative(amount)
        authorized = self.allowance(owner, spender)
        if authorized < amount:
            raise InsufficientAllowanceError(owner, spender, amount, authorized)
        self.transfer(owner, recipient, amount)
        self._allowances[(owner, spender)] = authorized - amount


class EscrowAccount:
    """ValueLedger port bound to one custody address on an InMemoryLedger."""

    def __init__(
        self,
        ledger: InMemoryLedger,
        address: str,
        pull_via_allowance: bool = True,
    ) -> None:
        self._ledger = ledger
        self._address = address
        self._pull_via_allowance = pull_via_allowance

    @property
    def address(self) -> str:
        return self._address

    @property
    def ledger(self) -> InMemoryLedger:
        return self._ledger

    async def transfer_in(self, sender: str, amount: int) -> None:
        if self._pull_via_allowance:
            self._ledger.transfer_from(self._address, sender, self._address, amount)
        else:
            self._ledger.transfer(sender, self._address, amount)
        logger.info(
            "ledger.transfer_in",
            custody=self._address,
            sender=sender,
            amount=amount,
        )

    async def transfer_out(self, recipient: str, amount: int) -> None:
        self._ledger.transfer(self._address, recipient, amount)
        logger.info(
            "ledger.transfer_out",
            custody=self._address,
            recipient=recipient,
            amount=amount,
        )

    async def balance(self) -> int:
        return self._ledger.balance_of(self._address)


def _require_non_negative(amount: int) -> None:
    if amount < 0:
        raise LedgerError(f"Transfer amount must be non-negative, got {amount}")


# ---------------------------------------------------------------------------
# Process-wide simulated ledgers (lazy singletons)
# ---------------------------------------------------------------------------
_token_ledger: InMemoryLedger | None = None
_collateral_ledger: InMemoryLedger | None = None


def get_token_ledger() -> InMemoryLedger:
    """Ledger holding deal funds."""
    global _token_ledger
    if _token_ledger is None:
        _token_ledger = InMemoryLedger(symbol="USDT")
    return _token_ledger


def get_collateral_ledger() -> InMemoryLedger:
    """Ledger holding native value staked as agent collateral."""
    global _collateral_ledger
    if _collateral_ledger is None:
        _collateral_ledger = InMemoryLedger(symbol="ETH")
    return _collateral_ledger
