"""Shared test fixtures for the Staked Escrow test suite.

Provides:
    - An in-memory SQLite database per test (aiosqlite, one shared connection)
    - A manual clock, fresh simulated ledgers and custody accounts
    - Registry and deal services wired the way the API wires them
    - Helpers for staking agents and proposing deals
"""

from __future__ import annotations

import hashlib
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from staked_escrow.clock import ManualClock
from staked_escrow.domain.enums import AgentRole
from staked_escrow.domain.parameters import ProtocolParameters
from staked_escrow.infrastructure.database.orm_models import Base, Deal
from staked_escrow.infrastructure.ledger import EscrowAccount, InMemoryLedger
from staked_escrow.services.agent_registry_service import AgentRegistryService
from staked_escrow.services.deal_service import DealService

ARBITER = "0x" + "0" * 39 + "1"
REGISTRY_CUSTODY = "0x" + "0" * 38 + "a1"
DEAL_MANAGER = "0x" + "0" * 38 + "d1"

BUSINESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
INFLUENCER = "0x" + "c" * 40
VALIDATOR = "0x" + "a" * 40
MODERATOR_1 = "0x" + "e1" * 20
MODERATOR_2 = "0x" + "e2" * 20
MODERATOR_3 = "0x" + "e3" * 20
STRANGER = "0x" + "f" * 40

DEAL_AMOUNT = 1_000_000_000
CONTENT = hashlib.sha256(b"three posts about the launch").digest()


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# World Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def params() -> ProtocolParameters:
    return ProtocolParameters()


@pytest.fixture
def token_ledger() -> InMemoryLedger:
    return InMemoryLedger("USDT")


@pytest.fixture
def native_ledger() -> InMemoryLedger:
    return InMemoryLedger("ETH")


@pytest.fixture
def collateral(native_ledger: InMemoryLedger) -> EscrowAccount:
    return EscrowAccount(native_ledger, REGISTRY_CUSTODY, pull_via_allowance=False)


@pytest.fixture
def escrow(token_ledger: InMemoryLedger) -> EscrowAccount:
    return EscrowAccount(token_ledger, DEAL_MANAGER)


@pytest.fixture
def registry(
    session: AsyncSession,
    collateral: EscrowAccount,
    params: ProtocolParameters,
    clock: ManualClock,
) -> AgentRegistryService:
    return AgentRegistryService(session, collateral, ARBITER, params, clock)


@pytest.fixture
def deals(
    session: AsyncSession,
    escrow: EscrowAccount,
    registry: AgentRegistryService,
    params: ProtocolParameters,
    clock: ManualClock,
) -> DealService:
    return DealService(session, escrow, registry, params, clock)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def stake(
    registry: AgentRegistryService,
    native_ledger: InMemoryLedger,
    address: str,
    role: AgentRole,
) -> None:
    """Fund ``address`` with exactly the stake for ``role`` and join."""
    amount = registry.get_stake_amount(role)
    native_ledger.mint(address, amount)
    await registry.join_as_agent(address, role, amount)


async def propose(
    deals: DealService,
    token_ledger: InMemoryLedger,
    clock: ManualClock,
    amount: int = DEAL_AMOUNT,
    deadline_in: int = 3600,
) -> Deal:
    """Fund and authorize the business, then propose a deal to INFLUENCER."""
    token_ledger.mint(BUSINESS, amount)
    token_ledger.approve(BUSINESS, DEAL_MANAGER, amount)
    return await deals.create_deal(
        caller=BUSINESS,
        validator=VALIDATOR,
        influencer=INFLUENCER,
        content=CONTENT,
        application_deadline=clock() + deadline_in,
        amount=amount,
    )


@pytest_asyncio.fixture
async def staked_validator(
    registry: AgentRegistryService, native_ledger: InMemoryLedger
) -> str:
    await stake(registry, native_ledger, VALIDATOR, AgentRole.VALIDATOR)
    return VALIDATOR


@pytest_asyncio.fixture
async def staked_moderators(
    registry: AgentRegistryService, native_ledger: InMemoryLedger
) -> list[str]:
    for address in (MODERATOR_1, MODERATOR_2, MODERATOR_3):
        await stake(registry, native_ledger, address, AgentRole.MODERATOR)
    return [MODERATOR_1, MODERATOR_2, MODERATOR_3]
