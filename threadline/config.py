"""Threadline process configuration using Pydantic Settings.

Deployment settings that admins edit at runtime (page size, rate limits,
SMTP, CORS list...) live in the config table, see ``store/config_store.py``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__


class ThreadlineConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="THREADLINE_",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Threadline"
    app_version: str = __version__
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8080

    # Database
    database_url: str = "sqlite+aiosqlite:///./threadline.db"
    db_wal_mode: bool = True
    db_busy_timeout: int = 5000  # ms
    db_synchronous: str = "NORMAL"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Requests per IP accepted since process start
    max_request_times: int = 250

    # Comma-separated peer addresses allowed to set X-Forwarded-For
    trusted_proxies: str = ""

    # Seconds a submission waits on spam check + notifications
    post_submit_timeout: float = 5.0

    # Outbound HTTP (Akismet, Turnstile, webhooks, image hosts)
    http_timeout: float = 10.0

    # Direct image storage; external image hosts are used when unset
    upload_dir: str = "uploads"
    upload_public_url: Optional[str] = None
    upload_max_bytes: int = 5_000_000

    @field_validator("db_synchronous")
    @classmethod
    def validate_synchronous(cls, v: str) -> str:
        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if v.upper() not in allowed:
            raise ValueError(f"db_synchronous must be one of {allowed}")
        return v.upper()

    @property
    def trusted_proxy_ips(self) -> frozenset[str]:
        return frozenset(ip.strip() for ip in self.trusted_proxies.split(",") if ip.strip())

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> ThreadlineConfig:
    """Factory function to create config instance."""
    return ThreadlineConfig()
