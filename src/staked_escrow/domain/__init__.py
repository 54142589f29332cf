"""Domain layer: pure business logic with zero framework dependencies."""

from staked_escrow.domain.enums import (
    DEAL_RESULTS,
    AgentRole,
    DealState,
    EventType,
)
from staked_escrow.domain.exceptions import (
    AuthorizationError,
    EscrowProtocolError,
    InvalidInputError,
    LedgerError,
    NotFoundError,
    StateConflictError,
)
from staked_escrow.domain.fees import FeeSplit, Settlement, split_fee
from staked_escrow.domain.ledger_protocol import MembershipOracle, ValueLedger
from staked_escrow.domain.parameters import ProtocolParameters
from staked_escrow.domain.state_machine import (
    DealStateMachine,
    validate_transition,
)

__all__ = [
    "DEAL_RESULTS",
    "AgentRole",
    "DealState",
    "EventType",
    "AuthorizationError",
    "EscrowProtocolError",
    "InvalidInputError",
    "LedgerError",
    "NotFoundError",
    "StateConflictError",
    "FeeSplit",
    "Settlement",
    "split_fee",
    "MembershipOracle",
    "ValueLedger",
    "ProtocolParameters",
    "DealStateMachine",
    "validate_transition",
]
