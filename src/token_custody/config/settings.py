"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``TOKENCUSTODY_``, nested via ``__``)
2. YAML config file (``config_path`` or ``TOKENCUSTODY_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class LedgerBackend(enum.StrEnum):
    """Ledger client implementations selectable at startup."""

    MEMORY = "memory"
    SOLANA = "solana"


class Commitment(enum.StrEnum):
    """Solana commitment levels, weakest first."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENCUSTODY_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENCUSTODY_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./token_custody.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class LedgerConfig(BaseSettings):
    """Ledger (Solana) connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENCUSTODY_LEDGER__",
        case_sensitive=False,
    )

    backend: LedgerBackend = LedgerBackend.SOLANA
    rpc_url: str = "https://api.devnet.solana.com"
    token_mint: str = ""
    token_decimals: int = Field(default=9, ge=0, le=9)
    commitment: Commitment = Commitment.CONFIRMED
    custodian_secret_key: str = Field(
        default="",
        description="Base58 custodian keypair (64-byte secret or 32-byte seed)",
    )
    request_timeout: float = 30.0
    poll_interval: float = 0.5


class DispatchConfig(BaseSettings):
    """Batch disbursement dispatcher settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENCUSTODY_DISPATCH__",
        case_sensitive=False,
    )

    max_retry: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)
    window_size: int = Field(default=3, ge=1)
    fetch_limit: int = Field(default=1000, ge=1, le=10000)
    max_concurrent_batches: int = Field(default=4, ge=1)
    resume_on_start: bool = False


class CustodyConfig(BaseSettings):
    """Dual-custody single transfer settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENCUSTODY_CUSTODY__",
        case_sensitive=False,
    )

    confirm_timeout: float = Field(default=30.0, gt=0)
    confirm_commitment: Commitment = Commitment.CONFIRMED


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENCUSTODY_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``TOKENCUSTODY_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="TOKENCUSTODY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    encryption_key: str = ""
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    custody: CustodyConfig = Field(default_factory=CustodyConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
