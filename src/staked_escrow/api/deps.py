"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the database
session, the acting caller, the custody accounts, and the services built
on top of them. Tests override the leaf providers (session, clock,
custody accounts) to run the whole stack against SQLite and fresh ledgers.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from staked_escrow.clock import Clock, system_clock
from staked_escrow.config import Settings, get_settings
from staked_escrow.domain.parameters import ProtocolParameters
from staked_escrow.infrastructure.database.engine import unit_of_work
from staked_escrow.infrastructure.ledger import (
    EscrowAccount,
    get_collateral_ledger,
    get_token_ledger,
)
from staked_escrow.logging_config import bind_caller
from staked_escrow.schemas.registry import ADDRESS_PATTERN
from staked_escrow.services.agent_registry_service import AgentRegistryService
from staked_escrow.services.deal_service import DealService

# One mutation at a time, from session open to commit.
_unit_of_work_lock = asyncio.Lock()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a serialized, all-or-nothing database session for a request."""
    async with _unit_of_work_lock, unit_of_work() as session:
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_clock() -> Clock:
    """Provide the time source used for every deadline check."""
    return system_clock


def get_protocol_parameters(
    settings: Settings = Depends(get_app_settings),
) -> ProtocolParameters:
    return settings.protocol_parameters


def get_caller_address(
    x_caller_address: str = Header(
        ...,
        alias="X-Caller-Address",
        pattern=ADDRESS_PATTERN,
        description="Address the request acts on behalf of",
    ),
) -> str:
    """Identify the acting address and bind it to the request's log context."""
    bind_caller(x_caller_address)
    return x_caller_address


def get_collateral_custody(
    settings: Settings = Depends(get_app_settings),
) -> EscrowAccount:
    """Registry custody account; stakes are attached to the join call itself."""
    return EscrowAccount(
        get_collateral_ledger(),
        settings.registry_custody_address,
        pull_via_allowance=False,
    )


def get_deal_escrow(
    settings: Settings = Depends(get_app_settings),
) -> EscrowAccount:
    """Deal manager custody account; deal funds are pulled on prior approval."""
    return EscrowAccount(get_token_ledger(), settings.deal_manager_address)


def get_registry_service(
    session: AsyncSession = Depends(get_db_session),
    collateral: EscrowAccount = Depends(get_collateral_custody),
    parameters: ProtocolParameters = Depends(get_protocol_parameters),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_app_settings),
) -> AgentRegistryService:
    """Provide an AgentRegistryService bound to the current session."""
    return AgentRegistryService(
        session,
        collateral,
        arbiter=settings.registry_arbiter_address,
        parameters=parameters,
        clock=clock,
    )


def get_deal_service(
    session: AsyncSession = Depends(get_db_session),
    escrow: EscrowAccount = Depends(get_deal_escrow),
    registry: AgentRegistryService = Depends(get_registry_service),
    parameters: ProtocolParameters = Depends(get_protocol_parameters),
    clock: Clock = Depends(get_clock),
) -> DealService:
    """Provide a DealService that consults the registry in the same session."""
    return DealService(session, escrow, registry, parameters=parameters, clock=clock)
