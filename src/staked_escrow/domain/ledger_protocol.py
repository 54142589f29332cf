"""Ports the protocol core depends on.

Defines the interfaces for the external value ledger and for registry
membership lookups. These are Protocols (structural subtyping) so concrete
implementations don't need to inherit from a base class; they just need to
match the shape.

The domain layer has ZERO imports from the database, the API or any ledger
client.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ValueLedger(Protocol):
    """A custody account on a fungible-value ledger.

    Concrete implementations:
        - infrastructure/ledger.py  (EscrowAccount over InMemoryLedger)

    Both transfers are atomic: they either move the full amount or raise a
    LedgerError without moving anything. The core never expects a callback
    from the ledger.
    """

    @property
    def address(self) -> str:
        """Ledger address of the custody account."""
        ...

    async def transfer_in(self, sender: str, amount: int) -> None:
        """Move ``amount`` from ``sender`` into custody.

        Raises:
            LedgerError: If the sender cannot cover or has not authorized it.
        """
        ...

    async def transfer_out(self, recipient: str, amount: int) -> None:
        """Move ``amount`` out of custody to ``recipient``."""
        ...

    async def balance(self) -> int:
        """Return the amount currently held in custody."""
        ...


@runtime_checkable
class MembershipOracle(Protocol):
    """Answers which addresses currently act as validators or moderators.

    Implemented by services/agent_registry_service.py.
    """

    async def is_validator(self, address: str) -> bool: ...

    async def is_moderator(self, address: str) -> bool: ...
