"""Pydantic models for the authentication and session domain.

Stored rows keep the hosted backend's column names through field aliases so
the same documents flow through every credential store backend.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserStatus(StrEnum):
    """Account status; only ``ACTIVE`` may authenticate."""

    ACTIVE = "ATIVO"
    BLOCKED = "BLOQUEADO"
    ON_LEAVE = "LICENCA"
    RESERVE = "RESERVA"


class CodePurpose(StrEnum):
    """What a verification code was issued for."""

    ACCOUNT_CREATION = "CRIACAO"
    PASSWORD_RESET = "REDEFINIR"


class SessionCheck(StrEnum):
    """Outcome of revalidating the local session."""

    VALID = "VALID"
    REVALIDATE = "REVALIDATE"
    REJECTED = "REJECTED"


class _Row(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("*", mode="after")
    @classmethod
    def _naive_datetimes_are_utc(cls, value: Any) -> Any:
        """Stored timestamps without an offset are read as UTC."""
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class UserRecord(_Row):
    """Persisted portal user (``usuarios``)."""

    nick: str
    password_hash: str = Field(alias="senha")
    role: str = Field(default="Fiscalizador", alias="cargo")
    verified: bool = Field(default=False, alias="verificado")
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime = Field(alias="data_criacao")
    last_access: datetime | None = Field(default=None, alias="ultimo_acesso")
    last_device_id: str | None = Field(default=None, alias="ultimo_device_id")


class VerificationCode(_Row):
    """Single-use verification code (``codigos_verificacao``)."""

    code_id: str | int | None = Field(default=None, alias="id")
    nick: str = Field(alias="usuario_nick")
    code: str = Field(alias="codigo")
    purpose: CodePurpose = Field(alias="tipo")
    expires_at: datetime = Field(alias="expira_em")
    used: bool = Field(default=False, alias="usado")


class DeviceInfo(_Row):
    """Environment metadata attached to a session row."""

    user_agent: str = Field(default="", alias="userAgent")
    platform: str = ""
    language: str = ""
    screen: str = ""
    timezone: str = ""


class SessionRecord(_Row):
    """Server-side session bound to a device (``sessoes``)."""

    nick: str = Field(alias="usuario_nick")
    token: str
    device_id: str
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    created_at: datetime = Field(alias="data_criacao")
    expires_at: datetime = Field(alias="data_expiracao")
    active: bool = Field(default=True, alias="ativa")
    stay_signed_in: bool = Field(default=False, alias="manter_conectado")


class LocalSession(_Row):
    """Client-held session snapshot stored in the local tiers."""

    nick: str
    token: str
    role: str = Field(alias="cargo")
    expires_at: datetime = Field(alias="expiracao")
    device_id: str | None = Field(default=None, alias="deviceId")
    stay_signed_in: bool = Field(default=False, alias="manterConectado")


class SessionValidation(BaseModel):
    """Result of ``SessionManager.validate_session``."""

    status: SessionCheck
    session: LocalSession | None = None

    @property
    def valid(self) -> bool:
        """Return whether the session may be used as-is."""
        return self.status is SessionCheck.VALID


class AuthResult(BaseModel):
    """Structured outcome returned by every facade operation."""

    success: bool
    message: str | None = None
    code: str | None = None
    nick: str | None = None
    token: str | None = None
    revalidate: bool = False
    session: LocalSession | None = None


class CreateAccountRequest(BaseModel):
    """Account creation payload."""

    nick: str = Field(min_length=1)
    password: str = Field(min_length=1)


class NickRequest(BaseModel):
    """Payload carrying only a nickname."""

    nick: str = Field(min_length=1)


class VerifyRequest(BaseModel):
    """Verification code confirmation payload."""

    nick: str = Field(min_length=1)
    code: str = Field(min_length=1)


class LoginRequest(BaseModel):
    """Login request payload."""

    nick: str = Field(min_length=1)
    password: str = Field(min_length=1)
    stay_signed_in: bool = True


class ResetPasswordRequest(BaseModel):
    """Password reset confirmation payload."""

    nick: str = Field(min_length=1)
    code: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class RevalidateRequest(BaseModel):
    """Device re-proof payload."""

    password: str = Field(min_length=1)
