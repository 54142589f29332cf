"""Pydantic schemas for the Deal API.

Deal content travels as a 0x-prefixed 32-byte hex string and is decoded
to raw bytes before it reaches the service.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

from staked_escrow.domain.enums import DealState
from staked_escrow.domain.parameters import MAX_AMOUNT
from staked_escrow.schemas.registry import ADDRESS_PATTERN

CONTENT_PATTERN = r"^0x[0-9a-fA-F]{64}$"

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateDealRequest(BaseModel):
    """Request body for proposing a deal and escrowing its amount."""

    validator: str = Field(
        ...,
        pattern=ADDRESS_PATTERN,
        description="Validator expected to attest the outcome",
    )
    influencer: str = Field(
        ...,
        pattern=ADDRESS_PATTERN,
        description="Counterparty who accepts the deal and collects on validation",
    )
    content: str = Field(
        ...,
        pattern=CONTENT_PATTERN,
        description="32-byte content reference (e.g. a content hash), 0x-prefixed hex",
    )
    application_deadline: int = Field(
        ...,
        gt=0,
        description="Unix timestamp by which the influencer must accept",
    )
    amount: int = Field(
        ...,
        gt=0,
        le=MAX_AMOUNT,
        description="Amount in ledger base units, pre-authorized for pull by the deal manager",
        examples=[100_000_000],
    )

    @property
    def content_bytes(self) -> bytes:
        return bytes.fromhex(self.content[2:])


class SetDealResultRequest(BaseModel):
    result: DealState = Field(..., description="VALIDATED or REJECTED")


class ModeratorVerdictRequest(BaseModel):
    beneficiary: str = Field(
        ...,
        pattern=ADDRESS_PATTERN,
        description="Deal business or influencer receiving the remainder",
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class DealResponse(BaseModel):
    """Response schema for a deal."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    business: str
    validator: str
    influencer: str
    content: str
    amount: int
    application_deadline: int
    created_at: int
    state: DealState
    result: DealState | None
    verdict_beneficiary: str | None
    moderator: str | None
    accepted_at: int | None
    result_submitted_at: int | None
    appealed_at: int | None
    closed_at: int | None
    fee_recipient: str | None
    fee_amount: int | None
    payout_recipient: str | None
    payout_amount: int | None

    @field_validator("content", mode="before")
    @classmethod
    def _hex_content(cls, value: object) -> object:
        if isinstance(value, bytes | bytearray):
            return "0x" + bytes(value).hex()
        return value


class SettlementResponse(BaseModel):
    """How a closed deal's escrow was paid out."""

    deal_id: uuid.UUID
    fee_recipient: str
    fee: int
    payee: str
    payout: int


class DealStatusResponse(BaseModel):
    """Lightweight status check response."""

    deal_id: uuid.UUID
    state: DealState
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current state"
    )
    can_accept: bool
    can_appeal: bool
    appeal_available_at: int | None
    verdict_due_at: int | None


class ProtocolEventResponse(BaseModel):
    """Response schema for a notification."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    subject_id: str
    actor: str
    payload: dict | None
    created_at: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
