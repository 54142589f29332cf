"""Database infrastructure: engine, ORM models, and repositories."""

from staked_escrow.infrastructure.database.engine import (
    close_db,
    init_db,
    unit_of_work,
)
from staked_escrow.infrastructure.database.orm_models import (
    Agent,
    Base,
    Deal,
    ProtocolEvent,
    SlashApproval,
    SlashRequest,
)
from staked_escrow.infrastructure.database.repositories import (
    AgentRepository,
    DealRepository,
    EventRepository,
    SlashRequestRepository,
)

__all__ = [
    "Base",
    "Agent",
    "Deal",
    "ProtocolEvent",
    "SlashApproval",
    "SlashRequest",
    "AgentRepository",
    "DealRepository",
    "EventRepository",
    "SlashRequestRepository",
    "init_db",
    "close_db",
    "unit_of_work",
]
