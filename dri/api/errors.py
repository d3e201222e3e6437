"""Error envelope shared by the auth bridge endpoints."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_NOT_AUTHENTICATED = "AUTH_NOT_AUTHENTICATED"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying the error envelope.

    ``redirect`` names the page the UI should navigate to, e.g. the entry
    page when the page guard rejects the local session.
    """

    def __init__(
        self,
        *,
        status_code: int,
        error_code: ApiErrorCode,
        message: str,
        redirect: str | None = None,
    ) -> None:
        detail: dict[str, str] = {"error_code": str(error_code), "message": message}
        if redirect:
            detail["redirect"] = redirect
        super().__init__(status_code=status_code, detail=detail)


def to_error_payload(detail: Any, status_code: int) -> dict[str, str | None]:
    """Normalize exception detail into ``{error_code, message, redirect}``."""
    if not isinstance(detail, dict):
        return {
            "error_code": f"HTTP_{status_code}",
            "message": str(detail or "HTTP error"),
            "redirect": None,
        }
    redirect = detail.get("redirect")
    return {
        "error_code": str(detail.get("error_code") or f"HTTP_{status_code}"),
        "message": str(detail.get("message") or detail.get("detail") or "HTTP error"),
        "redirect": str(redirect) if redirect else None,
    }
