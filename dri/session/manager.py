"""Session creation, device binding, revalidation and logout.

A session on a device moves Unauthenticated -> PendingConfirmation -> Active,
and leaves Active only for one of the absorbing states Superseded, Expired or
LoggedOut. Only one active session row exists per device fingerprint; a user
may hold active sessions on several devices at once.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable

from dri.auth.codes import generate_session_token
from dri.auth.models import (
    LocalSession,
    SessionCheck,
    SessionRecord,
    SessionValidation,
    UserStatus,
)
from dri.auth.repository import CredentialStore
from dri.core.clock import Clock, utc_now
from dri.core.config import SessionConfig
from dri.session.device import DeviceFingerprinter
from dri.session.storage import TwoTierSessionStore

LOGGER = logging.getLogger(__name__)


class SessionManager:
    """Owns the session snapshot and the server-side session rows."""

    def __init__(
        self,
        repo: CredentialStore,
        store: TwoTierSessionStore,
        fingerprinter: DeviceFingerprinter,
        config: SessionConfig,
        *,
        clock: Clock = utc_now,
        on_logout: Callable[[str], None] | None = None,
    ) -> None:
        self._repo = repo
        self._store = store
        self._fingerprinter = fingerprinter
        self._config = config
        self._clock = clock
        self._on_logout = on_logout

    @property
    def device_id(self) -> str:
        return self._fingerprinter.get_device_id()

    def create_session(self, nick: str, role: str, stay_signed_in: bool = True) -> LocalSession:
        """Mint a token, bind it to this device and persist it in both layers.

        Store errors propagate to the caller. A failure after the device's
        previous sessions were deactivated leaves the device with no active
        session.
        """
        device_id = self._fingerprinter.get_device_id()
        now = self._clock()
        ttl = (
            self._config.remember_ttl_seconds
            if stay_signed_in
            else self._config.short_ttl_seconds
        )
        expires_at = now + timedelta(seconds=ttl)
        token = generate_session_token(device_id)

        superseded = self._repo.deactivate_device_sessions(device_id)
        if superseded:
            LOGGER.info(
                "Superseded %s active session(s) on device",
                superseded,
                extra={"nick": nick, "device_id": device_id},
            )

        self._repo.insert_session(
            SessionRecord(
                nick=nick,
                token=token,
                device_id=device_id,
                device_info=self._fingerprinter.device_info(),
                created_at=now,
                expires_at=expires_at,
                active=True,
                stay_signed_in=stay_signed_in,
            )
        )
        self._repo.update_user(nick, last_access=now, last_device_id=device_id)

        snapshot = LocalSession(
            nick=nick,
            token=token,
            role=role,
            expires_at=expires_at,
            device_id=device_id,
            stay_signed_in=stay_signed_in,
        )
        self._store.write_snapshot(snapshot)
        LOGGER.info(
            "Session created",
            extra={"nick": nick, "device_id": device_id, "operation": "create_session"},
        )
        return snapshot

    def validate_session(self) -> SessionValidation:
        """Revalidate the local snapshot against its session row and this device."""
        snapshot = self._store.read_snapshot()
        if snapshot is None:
            self.logout()
            return SessionValidation(status=SessionCheck.REJECTED)

        now = self._clock()
        if snapshot.expires_at <= now:
            LOGGER.info("Local session expired", extra={"nick": snapshot.nick})
            self.logout()
            return SessionValidation(status=SessionCheck.REJECTED)

        try:
            record = self._repo.get_session(snapshot.token)
        except Exception:
            LOGGER.exception("Failed validating session", extra={"nick": snapshot.nick})
            return SessionValidation(status=SessionCheck.REJECTED)

        if record is None or not record.active or record.expires_at <= now:
            LOGGER.info("Session row missing, inactive or expired", extra={"nick": snapshot.nick})
            self.logout()
            return SessionValidation(status=SessionCheck.REJECTED)

        current_device = self._fingerprinter.get_device_id()
        if record.device_id != current_device or snapshot.device_id != current_device:
            if snapshot.stay_signed_in:
                LOGGER.info(
                    "Remembered session used from another device; revalidation required",
                    extra={"nick": snapshot.nick, "device_id": current_device},
                )
                return SessionValidation(status=SessionCheck.REVALIDATE, session=snapshot)
            LOGGER.info(
                "Session used from another device",
                extra={"nick": snapshot.nick, "device_id": current_device},
            )
            self.logout()
            return SessionValidation(status=SessionCheck.REJECTED)

        return SessionValidation(status=SessionCheck.VALID, session=snapshot)

    def validate_device_for_login(self, nick: str) -> LocalSession | None:
        """Adopt an unexpired active session of ``nick`` already bound to this device."""
        try:
            device_id = self._fingerprinter.get_device_id()
            record = self._repo.find_device_session(nick, device_id, self._clock())
            if record is None:
                return None

            user = self._repo.get_user(nick)
            if user is None or not user.verified or user.status is not UserStatus.ACTIVE:
                return None

            snapshot = LocalSession(
                nick=record.nick,
                token=record.token,
                role=user.role,
                expires_at=record.expires_at,
                device_id=record.device_id,
                stay_signed_in=record.stay_signed_in,
            )
            self._store.write_snapshot(snapshot)
        except Exception:
            LOGGER.exception("Failed validating device for login", extra={"nick": nick})
            return None

        LOGGER.info(
            "Adopted existing device session",
            extra={"nick": nick, "device_id": device_id, "operation": "login"},
        )
        return snapshot

    def deactivate_token(self, token: str) -> None:
        self._repo.deactivate_session(token)

    def current_session(self) -> LocalSession | None:
        return self._store.read_snapshot()

    def logout(self) -> None:
        """Deactivate the stored session (best effort) and always clear local state."""
        try:
            snapshot = self._store.read_snapshot()
            if snapshot is not None:
                self._repo.deactivate_session(snapshot.token)
        except Exception:
            LOGGER.exception("Failed deactivating session on logout")
        finally:
            self._store.clear()
            if self._on_logout is not None:
                self._on_logout(self._config.entry_page)
