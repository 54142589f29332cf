"""Domain enumerations for the Staked Escrow protocol.

These enums define the canonical roles, states and notification types used
throughout the system. They are framework-agnostic (no SQLAlchemy, no FastAPI
imports).
"""

import enum


class AgentRole(enum.StrEnum):
    """Role an agent stakes collateral for.

    Fixed at registration; an address holds at most one role at a time.
    """

    VALIDATOR = "VALIDATOR"
    MODERATOR = "MODERATOR"


class DealState(enum.StrEnum):
    """Lifecycle states of a deal.

    State transitions are enforced by the DealStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    CREATED = "CREATED"
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"
    VALIDATED = "VALIDATED"
    APPEAL = "APPEAL"
    CLOSED = "CLOSED"


# Outcomes a validator may attest to.
DEAL_RESULTS = frozenset({DealState.VALIDATED, DealState.REJECTED})


class EventType(enum.StrEnum):
    """Notifications recorded in the protocol_events table.

    Observational only: no protocol rule reads them back.
    """

    # Registry events
    AGENT_JOINED = "AGENT_JOINED"
    AGENT_LEFT = "AGENT_LEFT"
    SLASH_REQUEST_CREATED = "SLASH_REQUEST_CREATED"
    SLASH_REQUEST_APPROVED = "SLASH_REQUEST_APPROVED"
    SLASH_EXECUTED = "SLASH_EXECUTED"

    # Deal events
    DEAL_PROPOSAL_CREATED = "DEAL_PROPOSAL_CREATED"
    DEAL_STATE_CHANGED = "DEAL_STATE_CHANGED"
