"""Pydantic schemas for the simulated ledger routes (development only)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from staked_escrow.schemas.registry import ADDRESS_PATTERN

Asset = Literal["token", "collateral"]


class MintRequest(BaseModel):
    """Credit an account on one of the simulated ledgers."""

    asset: Asset = Field("token", description="'token' for deal funds, 'collateral' for stakes")
    account: str = Field(..., pattern=ADDRESS_PATTERN)
    amount: int = Field(..., gt=0)


class ApproveRequest(BaseModel):
    """Authorize the deal manager to pull deal funds from the caller."""

    amount: int = Field(..., ge=0)


class LedgerBalanceResponse(BaseModel):
    address: str
    token_balance: int
    collateral_balance: int
    deal_manager_allowance: int
