"""Pydantic BaseSettings — backends, signing and negotiation knobs."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────────
    APP_ENV: Literal["dev", "test", "prod"] = "dev"
    LOG_LEVEL: str = "INFO"

    # ── Backends (relayers) ─────────────────────────────────────
    # JSON file holding a list of backend descriptors
    BACKENDS_FILE: str = ""
    BACKEND_REQUEST_TIMEOUT_SECONDS: float = 10.0

    # ── Signature negotiation ───────────────────────────────────
    # Highest priority first; unlisted standards are tried last
    SIGNATURE_PRIORITY: list[str] = Field(
        default_factory=lambda: ["eth_signTypedData", "eth_personalSign"],
    )
    NEGOTIATION_TIMEOUT_SECONDS: float = 120.0

    # ── Network ─────────────────────────────────────────────────
    TARGET_NETWORK: str = "mainnet"

    # ── Signer (never commit real values) ───────────────────────
    SIGNER_PRIVATE_KEY: str = ""
    SIGNER_MAX_WORKERS: int = 1

    # ── Event bus ───────────────────────────────────────────────
    EVENT_BUS_MAXSIZE: int = 4096


settings = Settings()
