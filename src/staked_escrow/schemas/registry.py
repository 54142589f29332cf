"""Pydantic schemas for the Agent Registry API.

These schemas define the request/response shapes for the registry routes.
They are separate from the ORM models to maintain clean boundaries between
the API and database layers. The acting address always comes from the
X-Caller-Address header, never from the body.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field

from staked_escrow.domain.enums import AgentRole

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class JoinAgentRequest(BaseModel):
    """Request body for staking collateral and joining as an agent."""

    role: AgentRole = Field(..., description="Role to register for")
    deposit: int = Field(
        ...,
        ge=0,
        description="Collateral attached to the call; must equal the role's stake exactly",
        examples=[100_000_000],
    )


class CreateSlashRequestRequest(BaseModel):
    """Request body for accusing an agent."""

    target: str = Field(
        ...,
        pattern=ADDRESS_PATTERN,
        description="Address of the registered agent under accusation",
        examples=["0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"],
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class StakeAmountResponse(BaseModel):
    role: AgentRole
    amount: int


class AgentResponse(BaseModel):
    """Response schema for an agent entry."""

    model_config = ConfigDict(from_attributes=True)

    address: str
    role: AgentRole
    collateral: int
    joined_at: int


class MembershipResponse(BaseModel):
    """Membership predicates for one address."""

    address: str
    is_validator: bool
    is_moderator: bool


class LeaveAgentResponse(BaseModel):
    address: str
    refund: int


class SlashRequestResponse(BaseModel):
    """Response schema for a slash request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    target: str
    requester: str
    created_at: int
    deadline: int
    executed: bool
    executed_at: int | None
    forfeited_collateral: int | None
    approvals: list[str] = Field(default_factory=list)
    is_open: bool = False
