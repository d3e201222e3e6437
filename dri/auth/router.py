"""Authentication API router exposed to the portal UI."""

from __future__ import annotations

from fastapi import APIRouter

from dri.api.contracts import (
    ApiErrorResponse,
    AuthResultResponse,
    CurrentUserResponse,
    SessionSnapshotResponse,
)
from dri.api.errors import ApiError, ApiErrorCode
from dri.auth.models import (
    AuthResult,
    CreateAccountRequest,
    LocalSession,
    LoginRequest,
    NickRequest,
    ResetPasswordRequest,
    RevalidateRequest,
    VerifyRequest,
)
from dri.auth.service import AuthService


def _snapshot_response(snapshot: LocalSession | None) -> SessionSnapshotResponse | None:
    """Expose the snapshot without its bearer token."""
    if snapshot is None:
        return None
    return SessionSnapshotResponse(
        nick=snapshot.nick,
        role=snapshot.role,
        expires_at=snapshot.expires_at.isoformat(),
        device_id=snapshot.device_id,
        stay_signed_in=snapshot.stay_signed_in,
    )


def _to_response(result: AuthResult, *, redirect: str | None = None) -> AuthResultResponse:
    return AuthResultResponse(
        success=result.success,
        message=result.message,
        code=result.code,
        nick=result.nick,
        revalidate=result.revalidate,
        redirect=redirect,
        session=_snapshot_response(result.session),
    )


def create_auth_router(service: AuthService, *, entry_page: str) -> APIRouter:
    """Build the router for account, login, reset and session endpoints."""
    router = APIRouter(tags=["auth"])

    @router.post("/api/auth/accounts", response_model=AuthResultResponse)
    def create_account(req: CreateAccountRequest) -> AuthResultResponse:
        """Create an unverified account and return the code to publish."""
        return _to_response(service.create_account(req.nick, req.password))

    @router.post("/api/auth/accounts/resend-code", response_model=AuthResultResponse)
    def resend_code(req: NickRequest) -> AuthResultResponse:
        return _to_response(service.resend_verification_code(req.nick))

    @router.post("/api/auth/accounts/verify", response_model=AuthResultResponse)
    def verify(req: VerifyRequest) -> AuthResultResponse:
        """Confirm the code published in the profile motto."""
        return _to_response(service.verify_and_activate(req.nick, req.code))

    @router.post("/api/auth/login", response_model=AuthResultResponse)
    def login(req: LoginRequest) -> AuthResultResponse:
        return _to_response(service.login(req.nick, req.password, req.stay_signed_in))

    @router.post("/api/auth/revalidate", response_model=AuthResultResponse)
    def revalidate(req: RevalidateRequest) -> AuthResultResponse:
        """Re-prove credentials for a remembered session on a new device."""
        return _to_response(service.revalidate_device(req.password))

    @router.post("/api/auth/logout", response_model=AuthResultResponse)
    def logout() -> AuthResultResponse:
        return _to_response(service.logout(), redirect=entry_page)

    @router.post("/api/auth/password-reset/request", response_model=AuthResultResponse)
    def request_reset(req: NickRequest) -> AuthResultResponse:
        return _to_response(service.request_password_reset(req.nick))

    @router.post("/api/auth/password-reset", response_model=AuthResultResponse)
    def reset_password(req: ResetPasswordRequest) -> AuthResultResponse:
        return _to_response(service.reset_password(req.nick, req.code, req.new_password))

    @router.get(
        "/api/auth/session",
        response_model=AuthResultResponse,
        responses={401: {"model": ApiErrorResponse}},
    )
    def check_session() -> AuthResultResponse:
        """Page guard: revalidate the local session before rendering protected pages."""
        result = service.check_session()
        if not result.success and not result.revalidate:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_NOT_AUTHENTICATED,
                message=result.message or "Not authenticated",
                redirect=entry_page,
            )
        return _to_response(result)

    @router.get("/api/auth/me", response_model=CurrentUserResponse)
    def me() -> CurrentUserResponse:
        snapshot = service.get_current_user()
        return CurrentUserResponse(
            authenticated=snapshot is not None, user=_snapshot_response(snapshot)
        )

    return router
