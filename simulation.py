#!/usr/bin/env python3
"""Staked Escrow: End-to-End Simulation.

Simulates four scenarios with business, influencer, validator and moderator
bots on a simulated clock and in-memory ledgers:

    Scenario 1: Happy Path
        - Validator stakes and joins
        - Business escrows a deal, influencer accepts
        - Validator attests VALIDATED -> influencer withdraws (validator fee paid)

    Scenario 2: Rejection and Appeal
        - Validator attests REJECTED
        - Business appeals -> moderator rules for the business (moderator fee paid)

    Scenario 3: Silent Validator
        - Influencer accepts, validator never answers
        - Appeal is refused until the silence window has elapsed
        - Business appeals -> moderator rules for the influencer

    Scenario 4: Slashing
        - Moderator accuses the validator, a second moderator approves
        - Accused validator cannot leave while the request is open
        - Arbiter executes -> validator loses membership and collateral

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    python simulation.py --sqlite

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 3
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from staked_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from staked_escrow.clock import ManualClock  # noqa: E402
from staked_escrow.config import get_settings  # noqa: E402
from staked_escrow.domain.enums import AgentRole, DealState  # noqa: E402
from staked_escrow.domain.exceptions import EscrowProtocolError  # noqa: E402
from staked_escrow.domain.parameters import ProtocolParameters  # noqa: E402
from staked_escrow.infrastructure.ledger import EscrowAccount, InMemoryLedger  # noqa: E402
from staked_escrow.services.agent_registry_service import AgentRegistryService  # noqa: E402
from staked_escrow.services.deal_service import DealService  # noqa: E402

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
        from sqlalchemy.pool import StaticPool

        from staked_escrow.infrastructure.database.orm_models import Base

        # One shared connection, otherwise every session sees an empty database
        _sqlite_engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            echo=False,
            poolclass=StaticPool,
        )
        _sqlite_session_factory = async_sessionmaker(
            bind=_sqlite_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from staked_escrow.infrastructure.database.engine import init_db

        await init_db()


def get_session() -> Any:
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from staked_escrow.infrastructure.database.engine import _get_session_factory

    return _get_session_factory()()


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from staked_escrow.infrastructure.database.engine import close_db

        await close_db()


# ---------------------------------------------------------------------------
# Simulated world: clock, ledgers, custody accounts
# ---------------------------------------------------------------------------
@dataclass
class World:
    """Everything outside the database that a scenario shares."""

    clock: ManualClock = field(default_factory=ManualClock)
    tokens: InMemoryLedger = field(default_factory=lambda: InMemoryLedger("USDT"))
    native: InMemoryLedger = field(default_factory=lambda: InMemoryLedger("ETH"))
    params: ProtocolParameters = field(default_factory=lambda: get_settings().protocol_parameters)
    arbiter: str = field(default_factory=lambda: get_settings().registry_arbiter_address)

    def __post_init__(self) -> None:
        settings = get_settings()
        self.collateral = EscrowAccount(
            self.native, settings.registry_custody_address, pull_via_allowance=False
        )
        self.escrow = EscrowAccount(self.tokens, settings.deal_manager_address)

    @asynccontextmanager
    async def services(self):
        """One unit of work: commit on success, roll back on any error."""
        async with get_session() as session:
            try:
                registry = AgentRegistryService(
                    session, self.collateral, self.arbiter, self.params, self.clock
                )
                deals = DealService(session, self.escrow, registry, self.params, self.clock)
                yield registry, deals
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class AgentBot:
    """Simulated validator or moderator that stakes native collateral."""

    wallet: str
    role: AgentRole

    async def join(self, world: World) -> None:
        async with world.services() as (registry, _):
            stake = registry.get_stake_amount(self.role)
            world.native.mint(self.wallet, stake)
            await registry.join_as_agent(self.wallet, self.role, stake)
        logger.info(f"🟣 {self.role.value}: Joined", wallet=self.wallet, stake=stake)

    async def leave(self, world: World) -> int:
        async with world.services() as (registry, _):
            refund = await registry.leave_as_agent(self.wallet)
        logger.info(f"🟣 {self.role.value}: Left", wallet=self.wallet, refund=refund)
        return refund


@dataclass
class BusinessBot:
    """Simulated business that escrows deals and appeals bad outcomes."""

    wallet: str = "0x" + "b" * 40

    async def propose_deal(
        self, world: World, validator: str, influencer: str, amount: int, brief: str
    ) -> str:
        """Fund, authorize and propose a deal. Returns deal_id."""
        world.tokens.mint(self.wallet, amount)
        world.tokens.approve(self.wallet, world.escrow.address, amount)
        async with world.services() as (_, deals):
            deal = await deals.create_deal(
                caller=self.wallet,
                validator=validator,
                influencer=influencer,
                content=hashlib.sha256(brief.encode()).digest(),
                application_deadline=world.clock() + world.params.deal_lifespan,
                amount=amount,
            )
        logger.info("🔵 BUSINESS: Deal proposed", deal_id=str(deal.id), amount=amount)
        return str(deal.id)

    async def appeal(self, world: World, deal_id: str) -> None:
        async with world.services() as (_, deals):
            await deals.appeal_deal(self.wallet, _uuid(deal_id))
        logger.info("🔵 BUSINESS: Deal appealed", deal_id=deal_id)


@dataclass
class InfluencerBot:
    """Simulated influencer that accepts deals and collects payment."""

    wallet: str = "0x" + "c" * 40

    async def accept(self, world: World, deal_id: str) -> None:
        async with world.services() as (_, deals):
            await deals.accept_deal(self.wallet, _uuid(deal_id))
        logger.info("🟢 INFLUENCER: Deal accepted", deal_id=deal_id)

    async def withdraw(self, world: World, deal_id: str) -> None:
        async with world.services() as (_, deals):
            settlement = await deals.withdraw_payment(self.wallet, _uuid(deal_id))
        logger.info("🟢 INFLUENCER: Payment withdrawn", **settlement.to_dict())


async def attest(world: World, validator: AgentBot, deal_id: str, result: DealState) -> None:
    async with world.services() as (_, deals):
        await deals.set_deal_result(validator.wallet, _uuid(deal_id), result)
    logger.info("🟣 VALIDATOR: Result submitted", deal_id=deal_id, result=result.value)


async def rule(world: World, moderator: AgentBot, deal_id: str, beneficiary: str) -> None:
    async with world.services() as (_, deals):
        settlement = await deals.submit_moderator_verdict(
            moderator.wallet, _uuid(deal_id), beneficiary
        )
    logger.info("🟣 MODERATOR: Verdict", **settlement.to_dict())


def _uuid(value: str) -> uuid.UUID:
    return uuid.UUID(value)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_balances(world: World, **wallets: str) -> None:
    for name, address in wallets.items():
        print(f"  {name:<12} {world.tokens.balance_of(address):>14,} USDT")
    print(f"  {'escrow':<12} {world.tokens.balance_of(world.escrow.address):>14,} USDT")


async def print_status(world: World, deal_id: str) -> None:
    async with world.services() as (_, deals):
        status = await deals.get_status(_uuid(deal_id))
    print(f"  State: {status['state']}  allowed: {', '.join(status['allowed_events']) or '-'}")


async def print_audit_trail(world: World, subject_id: str) -> None:
    """Print the notification trail for a deal or slash request."""
    async with world.services() as (registry, _):
        events = await registry.get_events(subject_id)
    section(f"Notifications ({len(events)} entries)")
    for event in events:
        print(f"  [{event.created_at}] {event.event_type:<24} by {event.actor[:10]}... {event.payload or ''}")


async def expect_refusal(label: str, action) -> None:
    """Run an action that must be refused, and show why."""
    try:
        await action()
    except EscrowProtocolError as exc:
        print(f"  🛡️  {label}: refused ({exc.code}) {exc.message}")
    else:
        raise RuntimeError(f"{label} should have been refused")


# ===========================================================================
# Scenarios
# ===========================================================================
AMOUNT = 1_000_000_000


async def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path")
    world = World()
    business, influencer = BusinessBot(), InfluencerBot()
    validator = AgentBot("0x" + "a1" * 20, AgentRole.VALIDATOR)

    await validator.join(world)
    deal_id = await business.propose_deal(
        world, validator.wallet, influencer.wallet, AMOUNT, "Unbox the product on stream"
    )
    await influencer.accept(world, deal_id)
    await attest(world, validator, deal_id, DealState.VALIDATED)
    await influencer.withdraw(world, deal_id)

    section("Final Balances")
    print_balances(world, business=business.wallet, influencer=influencer.wallet, validator=validator.wallet)
    await print_status(world, deal_id)
    await print_audit_trail(world, deal_id)


async def scenario_2_rejection_and_appeal() -> None:
    banner("SCENARIO 2: Rejection and Appeal")
    world = World()
    business, influencer = BusinessBot(), InfluencerBot()
    validator = AgentBot("0x" + "a2" * 20, AgentRole.VALIDATOR)
    moderator = AgentBot("0x" + "e1" * 20, AgentRole.MODERATOR)

    await validator.join(world)
    await moderator.join(world)
    deal_id = await business.propose_deal(
        world, validator.wallet, influencer.wallet, AMOUNT, "Three posts in one week"
    )
    await influencer.accept(world, deal_id)
    await attest(world, validator, deal_id, DealState.REJECTED)
    await expect_refusal(
        "Influencer withdraws a rejected deal",
        lambda: influencer.withdraw(world, deal_id),
    )
    await business.appeal(world, deal_id)
    await rule(world, moderator, deal_id, business.wallet)

    section("Final Balances")
    print_balances(world, business=business.wallet, influencer=influencer.wallet, moderator=moderator.wallet)
    await print_audit_trail(world, deal_id)


async def scenario_3_silent_validator() -> None:
    banner("SCENARIO 3: Silent Validator")
    world = World()
    business, influencer = BusinessBot(), InfluencerBot()
    validator = AgentBot("0x" + "a3" * 20, AgentRole.VALIDATOR)
    moderator = AgentBot("0x" + "e2" * 20, AgentRole.MODERATOR)

    await validator.join(world)
    await moderator.join(world)
    deal_id = await business.propose_deal(
        world, validator.wallet, influencer.wallet, AMOUNT, "Review the new model"
    )
    await influencer.accept(world, deal_id)

    await expect_refusal("Business appeals right away", lambda: business.appeal(world, deal_id))

    world.clock.advance(world.params.validator_silence_window + 1)
    print(f"  ⏱️  Clock advanced past the silence window to {world.clock()}")

    await business.appeal(world, deal_id)
    await expect_refusal(
        "Validator wakes up and attests",
        lambda: attest(world, validator, deal_id, DealState.VALIDATED),
    )
    await rule(world, moderator, deal_id, influencer.wallet)

    section("Final Balances")
    print_balances(world, business=business.wallet, influencer=influencer.wallet, moderator=moderator.wallet)
    await print_status(world, deal_id)


async def scenario_4_slashing() -> None:
    banner("SCENARIO 4: Slashing")
    world = World()
    validator = AgentBot("0x" + "a4" * 20, AgentRole.VALIDATOR)
    accuser = AgentBot("0x" + "e3" * 20, AgentRole.MODERATOR)
    seconder = AgentBot("0x" + "e4" * 20, AgentRole.MODERATOR)

    for bot in (validator, accuser, seconder):
        await bot.join(world)

    async with world.services() as (registry, _):
        request = await registry.create_slash_request(accuser.wallet, validator.wallet)
    request_id = request.id
    logger.info("🟣 MODERATOR: Slash requested", request_id=str(request_id), target=validator.wallet)

    async def execute() -> None:
        async with world.services() as (registry, _):
            await registry.execute_slash_request(world.arbiter, request_id)

    await expect_refusal("Arbiter executes with one approval", execute)
    await expect_refusal("Accused validator leaves", lambda: validator.leave(world))

    async with world.services() as (registry, _):
        await registry.approve_slash_request(seconder.wallet, request_id)
    logger.info("🟣 MODERATOR: Slash approved", request_id=str(request_id), by=seconder.wallet)

    await execute()
    logger.info("⚖️  ARBITER: Slash executed", request_id=str(request_id))

    async with world.services() as (registry, _):
        still_validator = await registry.is_validator(validator.wallet)
    custody = world.native.balance_of(world.collateral.address)
    print(f"\n  Validator still registered: {still_validator}")
    print(f"  Collateral kept in custody:  {custody:,} ETH units")

    await print_audit_trail(world, str(request_id))


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_rejection_and_appeal,
    3: scenario_3_silent_validator,
    4: scenario_4_slashing,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🚀" * 35)
        print("  STAKED ESCROW SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print("🚀" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Staked Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
