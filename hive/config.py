"""Application configuration management."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment or `.env`."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash-latest", alias="GEMINI_MODEL")

    intent_prompt_path: Optional[Path] = Field(default=None, alias="INTENT_PROMPT_PATH")
    router_prompt_path: Optional[Path] = Field(default=None, alias="ROUTER_PROMPT_PATH")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")

    http_timeout_seconds: float = Field(
        default=15.0, alias="HTTP_TIMEOUT_SECONDS", gt=0, le=120
    )
    defillama_pools_url: str = Field(
        default="https://yields.llama.fi/pools",
        alias="DEFILLAMA_POOLS_URL",
    )
    kamino_api_url: str = Field(
        default="https://api.kamino.finance",
        alias="KAMINO_API_URL",
    )
    kamino_market: str = Field(
        default="7u3HeHxYDLhnCoErrtycNokbQYbWGzLs6JSDqGAv5PfF",
        alias="KAMINO_MARKET",
    )
    jupiter_lend_url: str = Field(
        default="https://api.solana.fluid.io/v1/lending/tokens",
        alias="JUPITER_LEND_URL",
    )
    defituna_vaults_url: str = Field(
        default="https://api.defituna.com/api/v1/vaults",
        alias="DEFITUNA_VAULTS_URL",
    )
    birdeye_api_key: Optional[str] = Field(default=None, alias="BIRDEYE_API_KEY")
    birdeye_base_url: str = Field(
        default="https://public-api.birdeye.so",
        alias="BIRDEYE_BASE_URL",
    )

    index_cache_ttl_seconds: int = Field(
        default=300, alias="INDEX_CACHE_TTL_SECONDS", ge=1, le=3600
    )
    onchain_cache_ttl_seconds: int = Field(
        default=300, alias="ONCHAIN_CACHE_TTL_SECONDS", ge=1, le=3600
    )
    vault_cache_ttl_seconds: int = Field(
        default=120, alias="VAULT_CACHE_TTL_SECONDS", ge=1, le=3600
    )
    cache_max_stale_seconds: int = Field(
        default=3600, alias="CACHE_MAX_STALE_SECONDS", ge=1, le=86400
    )

    cache_warmer_enabled: bool = Field(default=True, alias="CACHE_WARMER_ENABLED")
    cache_warm_interval_seconds: int = Field(
        default=240, alias="CACHE_WARM_INTERVAL_SECONDS", ge=10, le=3600
    )
    cache_warm_backoff_seconds: int = Field(
        default=600, alias="CACHE_WARM_BACKOFF_SECONDS", ge=0, le=86400
    )

    must_include_protocols: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["jupiter-lend"],
        alias="MUST_INCLUDE_PROTOCOLS",
    )
    tool_namespace: str = Field(default="solana", alias="TOOL_NAMESPACE")

    router_cache_ttl_seconds: int = Field(
        default=15, alias="ROUTER_CACHE_TTL_SECONDS", ge=0, le=600
    )
    router_cache_max_entries: int = Field(
        default=200, alias="ROUTER_CACHE_MAX_ENTRIES", ge=1, le=10_000
    )

    @field_validator("must_include_protocols", mode="before")
    @classmethod
    def _parse_protocols(cls, value: Any) -> List[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [part.strip().lower() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(v).strip().lower() for v in value if str(v).strip()]
        return [str(value).strip().lower()]


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Return cached Settings instance, raising a helpful message on failure."""
    try:
        return Settings()
    except (
        ValidationError
    ) as exc:  # pragma: no cover - configuration failure visible on boot
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


__all__ = ["Settings", "load_settings"]
