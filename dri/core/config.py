"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class StoreConfig:
    """Credential store backends and local state location."""

    mongo_uri: str
    mongo_db: str
    backend_url: str
    backend_key: str
    state_dir: str


@dataclass(frozen=True)
class SessionConfig:
    """Session lifetime and navigation settings."""

    remember_ttl_seconds: int
    short_ttl_seconds: int
    entry_page: str


@dataclass(frozen=True)
class VerificationConfig:
    """Verification code and role assignment settings."""

    code_ttl_seconds: int
    reset_code_ttl_seconds: int
    privileged_nick: str
    privileged_role: str
    default_role: str


@dataclass(frozen=True)
class ProfileConfig:
    """External avatar profile API settings."""

    base_url: str
    timeout_seconds: int


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """Local HTTP bridge perimeter settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    store: StoreConfig
    session: SessionConfig
    verification: VerificationConfig
    profile: ProfileConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "dri").strip() or "dri"
        backend_url = os.getenv("DRI_BACKEND_URL", "").strip().rstrip("/")
        backend_key = os.getenv("DRI_BACKEND_KEY", "").strip()
        state_dir = (
            os.getenv("DRI_STATE_DIR", "runtime/local_state").strip()
            or "runtime/local_state"
        )
        remember_ttl = int(os.getenv("DRI_SESSION_REMEMBER_TTL_SECONDS", str(5 * 86400)))
        short_ttl = int(os.getenv("DRI_SESSION_SHORT_TTL_SECONDS", "3600"))
        entry_page = os.getenv("DRI_ENTRY_PAGE", "index.html").strip() or "index.html"
        code_ttl = int(os.getenv("DRI_CODE_TTL_SECONDS", "300"))
        reset_code_ttl = int(os.getenv("DRI_RESET_CODE_TTL_SECONDS", "300"))
        privileged_nick = os.getenv("DRI_PRIVILEGED_NICK", "youiz").strip()
        privileged_role = os.getenv("DRI_PRIVILEGED_ROLE", "DEV").strip() or "DEV"
        default_role = (
            os.getenv("DRI_DEFAULT_ROLE", "Fiscalizador").strip() or "Fiscalizador"
        )
        profile_base_url = (
            os.getenv("DRI_PROFILE_API_BASE_URL", "https://www.habbo.com.br")
            .strip()
            .rstrip("/")
            or "https://www.habbo.com.br"
        )
        profile_timeout = int(os.getenv("DRI_PROFILE_API_TIMEOUT_SECONDS", "10"))
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(64 * 1024)))

        return AppConfig(
            store=StoreConfig(
                mongo_uri=mongo_uri,
                mongo_db=mongo_db,
                backend_url=backend_url,
                backend_key=backend_key,
                state_dir=state_dir,
            ),
            session=SessionConfig(
                remember_ttl_seconds=remember_ttl,
                short_ttl_seconds=short_ttl,
                entry_page=entry_page,
            ),
            verification=VerificationConfig(
                code_ttl_seconds=code_ttl,
                reset_code_ttl_seconds=reset_code_ttl,
                privileged_nick=privileged_nick,
                privileged_role=privileged_role,
                default_role=default_role,
            ),
            profile=ProfileConfig(
                base_url=profile_base_url,
                timeout_seconds=profile_timeout,
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
            ),
        )
