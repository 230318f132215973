"""Core configuration for the poolguard harness."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Harness settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="POOLGUARD_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "poolguard"
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Caller identities ────────────────────────────────────────────────
    owner_handle: str = "0x00000000000000000000000000000000000000a1"
    attacker_handle: str = "0x00000000000000000000000000000000000000a2"
    user_handle: str = "0x00000000000000000000000000000000000000a3"

    # ── Simulated pool genesis ───────────────────────────────────────────
    pool_fee_pips: int = Field(default=3000, ge=0, lt=1_000_000)
    initial_sqrt_price_x96: int = 2**96
    initial_liquidity: int = 10_000 * 10**18
    observation_cardinality: int = Field(default=64, ge=1, le=65535)
    genesis_timestamp: int = 1_700_000_000
    owner_funding: int = 1_000_000 * 10**18
    attacker_funding: int = 10_000 * 10**18
    user_funding: int = 10_000 * 10**18

    # ── Oracle ───────────────────────────────────────────────────────────
    twap_window_seconds: int = 60
    block_duration_seconds: int = 12

    # ── Slippage ─────────────────────────────────────────────────────────
    slippage_tolerance_bps: int = Field(default=50, ge=0, le=10_000)

    # ── Runner ───────────────────────────────────────────────────────────
    parallel_workers: int = Field(default=4, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
