"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_optional(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    database_timeout_seconds: float
    api_prefix: str
    gateway_token: Optional[str]
    actor_id_header: str
    actor_role_header: str
    actor_roles: tuple[str, ...]
    auto_reject_competing_requests: bool
    competing_rejection_reason: str
    seed_demo_data: bool
    max_concurrent_users: int
    search_max_length: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Residence Booking Service"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/residence_booking.db")),
        database_timeout_seconds=float(os.getenv("DATABASE_TIMEOUT_SECONDS", "5.0")),
        api_prefix=os.getenv("API_PREFIX", "/api"),
        gateway_token=_env_optional("GATEWAY_TOKEN"),
        actor_id_header=os.getenv("ACTOR_ID_HEADER", "X-Actor-Id"),
        actor_role_header=os.getenv("ACTOR_ROLE_HEADER", "X-Actor-Role"),
        actor_roles=("student", "service", "admin"),
        auto_reject_competing_requests=_env_bool("AUTO_REJECT_COMPETING_REQUESTS", False),
        competing_rejection_reason=os.getenv(
            "COMPETING_REJECTION_REASON",
            "The requested room has been allocated to another applicant.",
        ),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        max_concurrent_users=int(os.getenv("MAX_CONCURRENT_USERS", "1000")),
        search_max_length=int(os.getenv("SEARCH_MAX_LENGTH", "100")),
    )
