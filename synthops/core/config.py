"""Core configuration for the synthops toolkit."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Operator settings loaded from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SYNTHOPS_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Network / signer ─────────────────────────────────────────────────
    default_network: str = "goerli"
    provider_url: str = "https://{network}.infura.io/v3/{api_key}"
    infura_api_key: str = ""
    fork_url: str = "http://127.0.0.1:8545"
    local_url: str = "http://127.0.0.1:8545"
    private_key: str = ""  # never logged
    owner_address: str = ""  # protocolDAO; used as unlocked sender when no key

    # ── Deployment store ─────────────────────────────────────────────────
    deployment_root: str = "publish/deployed"

    # ── Gas ──────────────────────────────────────────────────────────────
    gas_limit: int = 300_000
    max_fee_per_gas_gwei: str | None = None
    max_priority_fee_per_gas_gwei: str = "1"

    # ── Foundry ──────────────────────────────────────────────────────────
    foundry_bin_path: str = "/usr/local/bin"
    cast_timeout_seconds: int = 600

    # ── Protocol ─────────────────────────────────────────────────────────
    base_synth: str = "sUSD"
    protected_synths: list[str] = Field(default_factory=lambda: ["sUSD"])


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
