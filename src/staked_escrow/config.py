"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup, so if a setting is malformed, the app fails fast with a clear
error message. Protocol constants are fixed for the lifetime of the process.

Usage:
    from staked_escrow.config import get_settings
    settings = get_settings()
    print(settings.protocol_parameters.validator_stake)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from staked_escrow.domain.parameters import ProtocolParameters


class Settings(BaseSettings):
    """Central configuration for the Staked Escrow service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database ---
    database_url: str = (
        "postgresql+asyncpg://escrow:escrow_dev"
        "@localhost:5432/staked_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Custody Addresses ---
    registry_arbiter_address: str = "0x" + "0" * 39 + "1"
    registry_custody_address: str = "0x" + "0" * 38 + "a1"
    deal_manager_address: str = "0x" + "0" * 38 + "d1"

    # --- Staking ---
    validator_stake_amount: int = 100_000_000
    moderator_stake_amount: int = 500_000_000
    slash_review_window_seconds: int = 7 * 24 * 60 * 60
    slash_approval_quorum: int = 2

    # --- Deal Timing ---
    deal_lifespan_seconds: int = 14 * 24 * 60 * 60
    validate_period_seconds: int = 10 * 60
    appeal_period_seconds: int = 7 * 24 * 60 * 60

    # --- Fees (numerator / denominator) ---
    validator_fee_numerator: int = 2_000
    moderator_fee_numerator: int = 10_000
    fee_denominator: int = 100_000

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def protocol_parameters(self) -> ProtocolParameters:
        """Build the frozen domain parameters from the configured constants."""
        return ProtocolParameters(
            validator_stake=self.validator_stake_amount,
            moderator_stake=self.moderator_stake_amount,
            slash_review_window=self.slash_review_window_seconds,
            slash_approval_quorum=self.slash_approval_quorum,
            deal_lifespan=self.deal_lifespan_seconds,
            validate_period=self.validate_period_seconds,
            appeal_period=self.appeal_period_seconds,
            validator_fee_numerator=self.validator_fee_numerator,
            moderator_fee_numerator=self.moderator_fee_numerator,
            fee_denominator=self.fee_denominator,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
