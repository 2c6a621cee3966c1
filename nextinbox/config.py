from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(PROJECT_ROOT / ".env", override=False)

REQUIRED_ENV = [
    "NEXTINBOX_API_URL",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_USER",
    "DB_PASSWORD",
]


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key)]
    if missing:
        joined = ", ".join(missing)
        raise RuntimeError(f"Missing required environment variables: {joined}")


@dataclass(frozen=True)
class Settings:
    api_url: str
    app_name: str
    supabase_url: str
    supabase_anon_key: str
    dispatch_timeout_seconds: float = 10.0
    notification_window_hours: float = 48.0
    notification_keepalive_seconds: float = 15.0
    auth_cache_ttl_seconds: float = 30.0
    auth_cookie_secure: bool = True
    timezone_name: str = ""

    @property
    def timezone(self) -> tzinfo | None:
        """Zone used for calendar-day logic; None means the process's local zone."""
        if not self.timezone_name:
            return None
        return ZoneInfo(self.timezone_name)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_url=os.getenv("NEXTINBOX_API_URL", "").rstrip("/"),
            app_name=os.getenv("APP_NAME", "NextInBox"),
            supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
            dispatch_timeout_seconds=float(os.getenv("DISPATCH_TIMEOUT_SECONDS", "10")),
            notification_window_hours=float(os.getenv("NOTIFICATION_WINDOW_HOURS", "48")),
            notification_keepalive_seconds=float(os.getenv("NOTIFICATION_KEEPALIVE_SECONDS", "15")),
            auth_cache_ttl_seconds=float(os.getenv("AUTH_CACHE_TTL_SECONDS", "30")),
            auth_cookie_secure=os.getenv("AUTH_COOKIE_SECURE", "1") == "1",
            timezone_name=os.getenv("DASHBOARD_TIMEZONE", "").strip(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
