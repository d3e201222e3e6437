"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    redirect: str | None = Field(
        default=None, description="Page the UI should navigate to, when any"
    )


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]
    backend: str


class SessionSnapshotResponse(BaseModel):
    """Local session snapshot as exposed to the UI layer."""

    nick: str
    role: str
    expires_at: str
    device_id: str | None = None
    stay_signed_in: bool


class AuthResultResponse(BaseModel):
    """Outcome envelope shared by all auth operations."""

    success: bool
    message: str | None = None
    code: str | None = None
    nick: str | None = None
    revalidate: bool = False
    redirect: str | None = None
    session: SessionSnapshotResponse | None = None


class CurrentUserResponse(BaseModel):
    """Current user endpoint response payload."""

    authenticated: bool
    user: SessionSnapshotResponse | None = None
