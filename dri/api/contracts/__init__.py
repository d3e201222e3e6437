"""Public API response contracts."""

from dri.api.contracts.models import (
    ApiErrorResponse,
    AuthResultResponse,
    CurrentUserResponse,
    HealthResponse,
    SessionSnapshotResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthResultResponse",
    "CurrentUserResponse",
    "HealthResponse",
    "SessionSnapshotResponse",
]
