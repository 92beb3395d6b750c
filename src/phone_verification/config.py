"""Phone Verification Service — configuration loaded from environment."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

from pydantic_settings import BaseSettings

Environment = Literal["development", "test", "production"]


@dataclass(frozen=True)
class VerificationConfig:
    """Resolved verification policy, injected into the services at construction."""

    code_length: int = 6
    code_expiry_minutes: int = 10
    max_attempts: int = 3
    cooldown_minutes: float = 2
    daily_limit_per_phone: int = 20
    daily_limit_per_ip: int = 100
    expiry_grace_enabled: bool = False
    expiry_grace_minutes: int = 5
    cleanup_retention_hours: int = 24
    daily_window_timezone: str = "UTC"
    phone_default_region: str | None = None


# Per-environment defaults; anything not listed falls back to the dataclass defaults.
PROFILES: dict[str, dict] = {
    "development": {
        "cooldown_minutes": 0.1,
        "daily_limit_per_phone": 1000,
        "daily_limit_per_ip": 5000,
    },
    "test": {
        "cooldown_minutes": 0.1,
        "daily_limit_per_phone": 1000,
        "daily_limit_per_ip": 5000,
    },
    "production": {},
}


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./phone_verification.db"
    database_echo: bool = False

    # ── App ───────────────────────────────────────────────
    app_name: str = "Phone Verification"
    environment: Environment = "development"
    debug: bool = True

    # Peers allowed to set X-Forwarded-For (JSON list in the environment)
    trusted_proxies: list[str] = []

    # ── SMS provider ──────────────────────────────────────
    sms_provider: Literal["console", "netgsm"] = "console"
    netgsm_api_url: str = "https://api.netgsm.com.tr/sms/rest/v2/send"
    netgsm_username: str = ""
    netgsm_password: str = ""
    netgsm_msgheader: str = ""
    sms_timeout_seconds: float = 10.0

    # ── Verification policy overrides (None = profile default) ──
    code_length: int | None = None
    code_expiry_minutes: int | None = None
    max_attempts: int | None = None
    cooldown_minutes: float | None = None
    daily_limit_per_phone: int | None = None
    daily_limit_per_ip: int | None = None
    expiry_grace_enabled: bool | None = None
    expiry_grace_minutes: int | None = None
    cleanup_retention_hours: int | None = None
    daily_window_timezone: str | None = None
    phone_default_region: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def verification_config(self) -> VerificationConfig:
        """Resolve the environment profile and apply explicit overrides."""
        config = replace(VerificationConfig(), **PROFILES[self.environment])
        overrides = {
            name: getattr(self, name)
            for name in VerificationConfig.__dataclass_fields__
            if getattr(self, name) is not None
        }
        return replace(config, **overrides)


# Singleton settings instance
settings = Settings()

# Resolved once at startup
verification_config = settings.verification_config()
