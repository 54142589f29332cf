"""Simulated ledger routes, mounted in development only.

They stand in for the external wallet so a client can fund accounts and
authorize the deal manager before proposing deals.

Routes:
    POST   /api/v1/ledger/mint            Credit an account
    POST   /api/v1/ledger/approve         Caller authorizes the deal manager
    GET    /api/v1/ledger/{address}       Balances and deal manager allowance
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from staked_escrow.api.deps import (
    get_caller_address,
    get_collateral_custody,
    get_deal_escrow,
)
from staked_escrow.infrastructure.ledger import EscrowAccount
from staked_escrow.logging_config import get_logger
from staked_escrow.schemas.ledger import ApproveRequest, LedgerBalanceResponse, MintRequest

router = APIRouter(prefix="/api/v1/ledger", tags=["Ledger (development)"])
logger = get_logger(__name__)


def _balances(
    address: str, escrow: EscrowAccount, collateral: EscrowAccount
) -> LedgerBalanceResponse:
    return LedgerBalanceResponse(
        address=address,
        token_balance=escrow.ledger.balance_of(address),
        collateral_balance=collateral.ledger.balance_of(address),
        deal_manager_allowance=escrow.ledger.allowance(address, escrow.address),
    )


@router.post(
    "/mint",
    response_model=LedgerBalanceResponse,
    summary="Credit an account on a simulated ledger",
)
async def mint(
    request: MintRequest,
    escrow: EscrowAccount = Depends(get_deal_escrow),
    collateral: EscrowAccount = Depends(get_collateral_custody),
) -> LedgerBalanceResponse:
    target = escrow if request.asset == "token" else collateral
    target.ledger.mint(request.account, request.amount)
    logger.info("ledger.mint_requested", asset=request.asset, account=request.account)
    return _balances(request.account, escrow, collateral)


@router.post(
    "/approve",
    response_model=LedgerBalanceResponse,
    summary="Authorize the deal manager to pull deal funds",
)
async def approve(
    request: ApproveRequest,
    caller: str = Depends(get_caller_address),
    escrow: EscrowAccount = Depends(get_deal_escrow),
    collateral: EscrowAccount = Depends(get_collateral_custody),
) -> LedgerBalanceResponse:
    escrow.ledger.approve(caller, escrow.address, request.amount)
    return _balances(caller, escrow, collateral)


@router.get(
    "/{address}",
    response_model=LedgerBalanceResponse,
    summary="Get balances for an address",
)
async def get_balances(
    address: str,
    escrow: EscrowAccount = Depends(get_deal_escrow),
    collateral: EscrowAccount = Depends(get_collateral_custody),
) -> LedgerBalanceResponse:
    return _balances(address, escrow, collateral)
