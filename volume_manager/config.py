"""Service configuration helpers."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

MODE_DEBUG = "debug"
MODE_RELEASE = "release"

STORE_POSTGRES = "postgres"
STORE_MEMORY = "memory"


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration for the volume manager process."""

    mode: str
    log_level: str
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    db_connect_timeout: int
    volume_store: str
    billing_addr: Optional[str]
    orchestrator_addr: Optional[str]
    request_timeout_seconds: float
    reconcile_interval_seconds: float
    reconcile_grace_seconds: float
    reconcile_max_attempts: int
    cors_origins: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_debug(self) -> bool:
        return self.mode == MODE_DEBUG

    def db_settings(self) -> Dict[str, Any]:
        """Keyword arguments accepted by ``psycopg2.connect``."""

        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
            "connect_timeout": self.db_connect_timeout,
        }


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _parse_connect_timeout(raw_value: Optional[str]) -> int:
    timeout = _to_float(raw_value, default=5.0)
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _optional(value: Optional[str]) -> Optional[str]:
    stripped = (value or "").strip()
    return stripped or None


def load_service_config(env: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """Load :class:`ServiceConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    mode = (env_mapping.get("MODE") or MODE_DEBUG).strip().lower()
    if mode not in {MODE_DEBUG, MODE_RELEASE}:
        raise ValueError("MODE must be 'debug' or 'release'")

    volume_store = (env_mapping.get("VOLUME_STORE") or STORE_POSTGRES).strip().lower()
    if volume_store not in {STORE_POSTGRES, STORE_MEMORY}:
        raise ValueError("VOLUME_STORE must be 'postgres' or 'memory'")

    request_timeout = _to_float(env_mapping.get("REQUEST_TIMEOUT_SECONDS"), default=10.0)
    if request_timeout <= 0:
        raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")

    max_attempts = _to_int(env_mapping.get("RECONCILE_MAX_ATTEMPTS"), default=5)
    if max_attempts < 1:
        raise ValueError("RECONCILE_MAX_ATTEMPTS must be >= 1")

    origins = tuple(
        origin.strip()
        for origin in (env_mapping.get("CORS_ORIGINS") or "").split(",")
        if origin.strip()
    )

    return ServiceConfig(
        mode=mode,
        log_level=(env_mapping.get("LOG_LEVEL") or "INFO").strip().upper(),
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        db_name=env_mapping.get("DB_NAME", "volumes"),
        db_user=env_mapping.get("DB_USER", "postgres"),
        db_password=env_mapping.get("DB_PASSWORD", "postgres"),
        db_connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT")),
        volume_store=volume_store,
        billing_addr=_optional(env_mapping.get("BILLING_ADDR")),
        orchestrator_addr=_optional(env_mapping.get("ORCHESTRATOR_ADDR")),
        request_timeout_seconds=request_timeout,
        reconcile_interval_seconds=max(
            0.0, _to_float(env_mapping.get("RECONCILE_INTERVAL_SECONDS"), default=60.0)
        ),
        reconcile_grace_seconds=max(
            0.0, _to_float(env_mapping.get("RECONCILE_GRACE_SECONDS"), default=120.0)
        ),
        reconcile_max_attempts=max_attempts,
        cors_origins=origins,
    )


__all__ = [
    "MODE_DEBUG",
    "MODE_RELEASE",
    "STORE_MEMORY",
    "STORE_POSTGRES",
    "ServiceConfig",
    "load_service_config",
]
