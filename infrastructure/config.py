"""Service configuration read from ``APP__*`` environment variables."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from domain.paging import MAX_PAGE_SIZE

SERVICE_NAME = "order-service"


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise RuntimeError(f"{name} must be between {minimum} and {maximum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    service_name: str = SERVICE_NAME
    db_dsn: Optional[str] = None
    order_number_prefix: str = "ORD"
    order_number_timezone: str = "UTC"
    promoter_enabled: bool = True
    promoter_interval_seconds: int = 300
    promoter_page_size: int = 50
    log_level: str = "INFO"
    # Deployments migrate with `alembic upgrade head`; this is for local runs.
    db_create_schema: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            service_name=os.getenv("APP__SERVICE_NAME", SERVICE_NAME),
            db_dsn=os.getenv("APP__DB_DSN"),
            order_number_prefix=os.getenv("APP__ORDER_NUMBER_PREFIX", "ORD"),
            order_number_timezone=os.getenv("APP__ORDER_NUMBER_TIMEZONE", "UTC"),
            promoter_enabled=_get_bool("APP__PROMOTER_ENABLED", True),
            promoter_interval_seconds=_get_int("APP__PROMOTER_INTERVAL_SECONDS", 300, minimum=1),
            promoter_page_size=_get_int("APP__PROMOTER_PAGE_SIZE", 50, minimum=1, maximum=MAX_PAGE_SIZE),
            log_level=os.getenv("APP__LOG_LEVEL", "INFO"),
            db_create_schema=_get_bool("APP__DB_CREATE_SCHEMA", False),
        )
