from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

GATEWAY_BANKS = ("bca", "bni", "bri", "permata", "mandiri")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class PosConfig:
    env_name: str = "dev"
    api_base_url: str = ""
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    poll_interval_seconds: float = 3.0
    max_polls: int = 0
    default_bank: str = "bca"
    database_url: str = "sqlite+pysqlite:///./sedia_pos.db"

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()

    @property
    def poll_limit(self) -> int | None:
        return self.max_polls or None

    def require_api(self) -> None:
        if not self.api_base_url:
            raise ConfigError("Missing required config values: SEDIA_POS_API_BASE_URL")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> PosConfig:
    """Load config from environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("SEDIA_POS_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"SEDIA_POS_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("SEDIA_POS_API_BASE_URL") or "").strip()
    )

    connect_timeout_seconds = _read_float("SEDIA_POS_CONNECT_TIMEOUT_SECONDS", "5")
    _validate(
        connect_timeout_seconds > 0,
        f"Invalid SEDIA_POS_CONNECT_TIMEOUT_SECONDS: expected > 0, got {connect_timeout_seconds}",
    )
    read_timeout_seconds = _read_float("SEDIA_POS_READ_TIMEOUT_SECONDS", "15")
    _validate(
        read_timeout_seconds > 0,
        f"Invalid SEDIA_POS_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    retries = _read_int("SEDIA_POS_RETRIES", "3")
    _validate(retries >= 0, f"Invalid SEDIA_POS_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("SEDIA_POS_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        f"Invalid SEDIA_POS_RETRY_BACKOFF_SECONDS: expected >= 0, got {retry_backoff_seconds}",
    )

    max_connections = _read_int("SEDIA_POS_MAX_CONNECTIONS", "20")
    _validate(
        max_connections >= 1,
        f"Invalid SEDIA_POS_MAX_CONNECTIONS: expected >= 1, got {max_connections}",
    )

    poll_interval_seconds = _read_float("SEDIA_POS_POLL_INTERVAL_SECONDS", "3")
    _validate(
        poll_interval_seconds > 0,
        f"Invalid SEDIA_POS_POLL_INTERVAL_SECONDS: expected > 0, got {poll_interval_seconds}",
    )

    # 0 keeps polling until the operator cancels
    max_polls = _read_int("SEDIA_POS_MAX_POLLS", "0")
    _validate(max_polls >= 0, f"Invalid SEDIA_POS_MAX_POLLS: expected >= 0, got {max_polls}")

    default_bank = (os.getenv("SEDIA_POS_DEFAULT_BANK") or "bca").strip().lower()
    _validate(
        default_bank in GATEWAY_BANKS,
        f"Invalid SEDIA_POS_DEFAULT_BANK: expected one of {', '.join(GATEWAY_BANKS)}, got {default_bank!r}",
    )

    database_url = (os.getenv("SEDIA_POS_DATABASE_URL") or "sqlite+pysqlite:///./sedia_pos.db").strip()

    return PosConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=_coerce_bool(os.getenv("SEDIA_POS_VERIFY_SSL"), True),
        poll_interval_seconds=poll_interval_seconds,
        max_polls=max_polls,
        default_bank=default_bank,
        database_url=database_url,
    )
