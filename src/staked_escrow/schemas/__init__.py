"""Pydantic API schemas."""

from staked_escrow.schemas.deals import (
    CreateDealRequest,
    DealResponse,
    DealStatusResponse,
    HealthResponse,
    ModeratorVerdictRequest,
    ProtocolEventResponse,
    SetDealResultRequest,
    SettlementResponse,
)
from staked_escrow.schemas.ledger import (
    ApproveRequest,
    LedgerBalanceResponse,
    MintRequest,
)
from staked_escrow.schemas.registry import (
    AgentResponse,
    CreateSlashRequestRequest,
    JoinAgentRequest,
    LeaveAgentResponse,
    MembershipResponse,
    SlashRequestResponse,
    StakeAmountResponse,
)

__all__ = [
    "AgentResponse",
    "ApproveRequest",
    "CreateDealRequest",
    "CreateSlashRequestRequest",
    "DealResponse",
    "DealStatusResponse",
    "HealthResponse",
    "JoinAgentRequest",
    "LeaveAgentResponse",
    "LedgerBalanceResponse",
    "MembershipResponse",
    "MintRequest",
    "ModeratorVerdictRequest",
    "ProtocolEventResponse",
    "SetDealResultRequest",
    "SettlementResponse",
    "SlashRequestResponse",
    "StakeAmountResponse",
]
