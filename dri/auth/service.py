"""Account lifecycle facade: creation, verification, login, reset, logout."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Protocol

from dri.auth.codes import generate_session_token, generate_verification_code
from dri.auth.models import (
    AuthResult,
    CodePurpose,
    LocalSession,
    SessionCheck,
    SessionValidation,
    UserRecord,
    UserStatus,
    VerificationCode,
)
from dri.auth.repository import CredentialStore, DuplicateNickError
from dri.core.clock import Clock, utc_now
from dri.core.config import SessionConfig, VerificationConfig
from dri.core.security import hash_password, is_legacy_hash, verify_password
from dri.session.manager import SessionManager
from dri.session.storage import TwoTierSessionStore

LOGGER = logging.getLogger(__name__)

MSG_NICK_TAKEN = "Nick já existe"
MSG_INVALID_INPUT = "Nick e senha são obrigatórios"
MSG_ACCOUNT_CREATED = "Conta criada! Verificando missão do Habbo..."
MSG_CODE_INVALID = "Código inválido ou expirado"
MSG_CODE_NOT_IN_PROFILE = "Código não encontrado na missão"
MSG_VERIFIED = "Conta verificada com sucesso!"
MSG_BAD_CREDENTIALS = "Nick ou senha inválidos"
MSG_NOT_VERIFIED = "Conta ainda não verificada"
MSG_SESSION_RESTORED = "Sessão restaurada neste dispositivo"
MSG_PASSWORD_RESET = "Senha redefinida com sucesso!"
MSG_RESET_CODE_ISSUED = "Código de redefinição gerado. Coloque-o na sua missão do Habbo."
MSG_NEW_CODE_ISSUED = "Novo código gerado. Coloque-o na sua missão do Habbo."
MSG_ALREADY_VERIFIED = "Conta já verificada"
MSG_USER_NOT_FOUND = "Nick não encontrado"
MSG_NOT_AUTHENTICATED = "Nenhuma sessão ativa"

STATUS_MESSAGES: dict[UserStatus, str] = {
    UserStatus.BLOCKED: "Usuário bloqueado",
    UserStatus.ON_LEAVE: "Usuário em licença",
    UserStatus.RESERVE: "Usuário na reserva",
}
MSG_STATUS_INACTIVE = "Usuário não está ativo"


class ProfileVerifierProtocol(Protocol):
    """Protocol describing the proof-of-control check used by the facade."""

    def verify_code_in_profile(self, nick: str, code: str) -> bool:
        """Return whether the code is published in the nick's profile."""


class AuthService:
    """Auth facade composing codes, profile proof and the session manager.

    Every public operation returns an ``AuthResult``; validation failures and
    backend errors never escape as exceptions.
    """

    def __init__(
        self,
        repo: CredentialStore,
        verifier: ProfileVerifierProtocol,
        local_store: TwoTierSessionStore,
        verification: VerificationConfig,
        session_config: SessionConfig,
        *,
        sessions: SessionManager | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repo = repo
        self._verifier = verifier
        self._local = local_store
        self._verification = verification
        self._session_config = session_config
        self._sessions = sessions
        self._clock = clock

    def _role_for(self, nick: str) -> str:
        privileged = self._verification.privileged_nick
        if privileged and nick.lower() == privileged.lower():
            return self._verification.privileged_role
        return self._verification.default_role

    def _issue_code(self, nick: str, purpose: CodePurpose, ttl_seconds: int) -> str:
        code = generate_verification_code()
        self._repo.insert_code(
            VerificationCode(
                nick=nick,
                code=code,
                purpose=purpose,
                expires_at=self._clock() + timedelta(seconds=ttl_seconds),
                used=False,
            )
        )
        LOGGER.info(
            "Verification code issued purpose=%s",
            purpose,
            extra={"nick": nick, "operation": "issue_code"},
        )
        return code

    def create_account(self, nick: str, password: str) -> AuthResult:
        """Register an unverified account and issue its creation code."""
        if not nick or not password:
            return AuthResult(success=False, message=MSG_INVALID_INPUT)
        try:
            if self._repo.get_user(nick) is not None:
                return AuthResult(success=False, message=MSG_NICK_TAKEN)

            try:
                self._repo.insert_user(
                    UserRecord(
                        nick=nick,
                        password_hash=hash_password(password),
                        role=self._role_for(nick),
                        verified=False,
                        status=UserStatus.ACTIVE,
                        created_at=self._clock(),
                    )
                )
            except DuplicateNickError:
                return AuthResult(success=False, message=MSG_NICK_TAKEN)

            code = self._issue_code(
                nick, CodePurpose.ACCOUNT_CREATION, self._verification.code_ttl_seconds
            )
        except Exception:
            LOGGER.exception("Account creation failed", extra={"nick": nick})
            return AuthResult(success=False, message="Erro ao criar conta")

        return AuthResult(success=True, code=code, nick=nick, message=MSG_ACCOUNT_CREATED)

    def resend_verification_code(self, nick: str) -> AuthResult:
        """Issue a fresh creation code for an account that is still unverified."""
        try:
            user = self._repo.get_user(nick)
            if user is None:
                return AuthResult(success=False, message=MSG_USER_NOT_FOUND)
            if user.verified:
                return AuthResult(success=False, message=MSG_ALREADY_VERIFIED)
            code = self._issue_code(
                nick, CodePurpose.ACCOUNT_CREATION, self._verification.code_ttl_seconds
            )
        except Exception:
            LOGGER.exception("Resending verification code failed", extra={"nick": nick})
            return AuthResult(success=False, message="Erro ao gerar novo código")
        return AuthResult(success=True, code=code, nick=nick, message=MSG_NEW_CODE_ISSUED)

    def verify_and_activate(self, nick: str, code: str) -> AuthResult:
        """Confirm a creation code published in the profile motto and verify the user."""
        try:
            stored = self._repo.find_valid_code(
                nick, code, CodePurpose.ACCOUNT_CREATION, self._clock()
            )
            if stored is None:
                LOGGER.info("Code not found or expired", extra={"nick": nick})
                return AuthResult(success=False, message=MSG_CODE_INVALID)

            if not self._verifier.verify_code_in_profile(nick, code):
                return AuthResult(success=False, message=MSG_CODE_NOT_IN_PROFILE)

            self._repo.mark_code_used(stored)
            self._repo.update_user(nick, verified=True)
        except Exception:
            LOGGER.exception("Account verification failed", extra={"nick": nick})
            return AuthResult(success=False, message="Erro ao verificar conta")

        LOGGER.info("Account verified", extra={"nick": nick, "operation": "verify"})
        return AuthResult(success=True, nick=nick, message=MSG_VERIFIED)

    def _check_credentials(self, nick: str, password: str) -> tuple[UserRecord | None, str]:
        """Return ``(user, "")`` when the user may authenticate, else ``(None, message)``."""
        user = self._repo.get_user(nick)
        if user is None or not verify_password(password, user.password_hash):
            return None, MSG_BAD_CREDENTIALS
        if not user.verified:
            return None, MSG_NOT_VERIFIED
        if user.status is not UserStatus.ACTIVE:
            return None, STATUS_MESSAGES.get(user.status, MSG_STATUS_INACTIVE)
        if is_legacy_hash(user.password_hash):
            self._repo.update_user(nick, password_hash=hash_password(password))
            LOGGER.info("Upgraded legacy password hash", extra={"nick": nick})
        return user, ""

    def _write_minimal_session(self, user: UserRecord, stay_signed_in: bool) -> LocalSession:
        now = self._clock()
        ttl = (
            self._session_config.remember_ttl_seconds
            if stay_signed_in
            else self._session_config.short_ttl_seconds
        )
        snapshot = LocalSession(
            nick=user.nick,
            token=generate_session_token(),
            role=user.role,
            expires_at=now + timedelta(seconds=ttl),
            stay_signed_in=stay_signed_in,
        )
        self._local.write_snapshot(snapshot)
        self._repo.update_user(user.nick, last_access=now)
        return snapshot

    def login(self, nick: str, password: str, stay_signed_in: bool = True) -> AuthResult:
        """Authenticate, preferring silent re-authentication on a bound device."""
        try:
            if self._sessions is not None:
                adopted = self._sessions.validate_device_for_login(nick)
                if adopted is not None:
                    return AuthResult(
                        success=True,
                        nick=nick,
                        token=adopted.token,
                        session=adopted,
                        message=MSG_SESSION_RESTORED,
                    )

            user, failure = self._check_credentials(nick, password)
            if user is None:
                LOGGER.info("Login rejected: %s", failure, extra={"nick": nick})
                return AuthResult(success=False, message=failure)

            if self._sessions is not None:
                snapshot = self._sessions.create_session(nick, user.role, stay_signed_in)
            else:
                snapshot = self._write_minimal_session(user, stay_signed_in)
        except Exception:
            LOGGER.exception("Login failed", extra={"nick": nick})
            return AuthResult(success=False, message="Erro no login")

        return AuthResult(success=True, nick=nick, token=snapshot.token, session=snapshot)

    def revalidate_device(self, password: str) -> AuthResult:
        """Re-prove credentials for a remembered session seen on another device."""
        snapshot = self._local.read_snapshot()
        if snapshot is None or self._sessions is None:
            return AuthResult(success=False, message=MSG_NOT_AUTHENTICATED)
        try:
            user, failure = self._check_credentials(snapshot.nick, password)
            if user is None:
                return AuthResult(success=False, message=failure)
            self._sessions.deactivate_token(snapshot.token)
            renewed = self._sessions.create_session(user.nick, user.role, True)
        except Exception:
            LOGGER.exception("Device revalidation failed", extra={"nick": snapshot.nick})
            return AuthResult(success=False, message="Erro ao revalidar dispositivo")
        return AuthResult(success=True, nick=user.nick, token=renewed.token, session=renewed)

    def request_password_reset(self, nick: str) -> AuthResult:
        """Issue a password-reset code for a verified account."""
        try:
            user = self._repo.get_user(nick)
            if user is None or not user.verified:
                return AuthResult(success=False, message=MSG_USER_NOT_FOUND)
            code = self._issue_code(
                nick, CodePurpose.PASSWORD_RESET, self._verification.reset_code_ttl_seconds
            )
        except Exception:
            LOGGER.exception("Password reset request failed", extra={"nick": nick})
            return AuthResult(success=False, message="Erro ao solicitar redefinição")
        return AuthResult(success=True, code=code, nick=nick, message=MSG_RESET_CODE_ISSUED)

    def reset_password(self, nick: str, code: str, new_password: str) -> AuthResult:
        """Overwrite the password after the reset code is proven in the profile motto."""
        if not new_password:
            return AuthResult(success=False, message=MSG_INVALID_INPUT)
        try:
            stored = self._repo.find_valid_code(
                nick, code, CodePurpose.PASSWORD_RESET, self._clock()
            )
            if stored is None:
                return AuthResult(success=False, message=MSG_CODE_INVALID)

            if not self._verifier.verify_code_in_profile(nick, code):
                return AuthResult(success=False, message=MSG_CODE_NOT_IN_PROFILE)

            self._repo.mark_code_used(stored)
            self._repo.update_user(nick, password_hash=hash_password(new_password))
        except Exception:
            LOGGER.exception("Password reset failed", extra={"nick": nick})
            return AuthResult(success=False, message="Erro ao redefinir senha")

        LOGGER.info("Password reset", extra={"nick": nick, "operation": "reset_password"})
        return AuthResult(success=True, nick=nick, message=MSG_PASSWORD_RESET)

    def logout(self) -> AuthResult:
        """End the local session; remote deactivation is best effort."""
        if self._sessions is not None:
            self._sessions.logout()
        else:
            self._local.clear()
        return AuthResult(success=True)

    @staticmethod
    def _validate(sessions: SessionManager) -> SessionValidation:
        try:
            return sessions.validate_session()
        except Exception:
            LOGGER.exception("Session validation failed")
            return SessionValidation(status=SessionCheck.REJECTED)

    def check_session(self) -> AuthResult:
        """Page-guard check returning the session or a revalidation request."""
        if self._sessions is None:
            snapshot = self.get_current_user() if self.is_authenticated() else None
            if snapshot is None:
                return AuthResult(success=False, message=MSG_NOT_AUTHENTICATED)
            return AuthResult(success=True, nick=snapshot.nick, session=snapshot)

        validation = self._validate(self._sessions)
        if validation.status is SessionCheck.REJECTED:
            return AuthResult(success=False, message=MSG_NOT_AUTHENTICATED)
        session = validation.session
        return AuthResult(
            success=validation.valid,
            nick=session.nick if session else None,
            session=session,
            revalidate=validation.status is SessionCheck.REVALIDATE,
        )

    def is_authenticated(self) -> bool:
        """Return whether a usable session exists for this client."""
        if self._sessions is not None:
            return self._validate(self._sessions).valid

        snapshot = self._local.read_snapshot()
        if snapshot is None:
            return False
        if snapshot.expires_at <= self._clock():
            self._local.clear()
            return False
        return True

    def get_current_user(self) -> LocalSession | None:
        return self._local.read_snapshot()
