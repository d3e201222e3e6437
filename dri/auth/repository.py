"""Credential store: users, verification codes and session rows."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

import pymongo
from pymongo.errors import DuplicateKeyError, PyMongoError

from dri.auth.models import CodePurpose, SessionRecord, UserRecord, VerificationCode

LOGGER = logging.getLogger(__name__)

USERS_TABLE = "usuarios"
CODES_TABLE = "codigos_verificacao"
SESSIONS_TABLE = "sessoes"


class StoreError(RuntimeError):
    """Raised when the credential store cannot complete an operation."""


class DuplicateNickError(StoreError):
    """Raised when the store's uniqueness constraint rejects a nickname."""


class CredentialStore(Protocol):
    """Protocol describing the row operations used by the auth domain."""

    def get_user(self, nick: str) -> UserRecord | None:
        """Return user by exact nickname, or ``None``."""

    def insert_user(self, user: UserRecord) -> None:
        """Insert a new user, raising ``DuplicateNickError`` on conflict."""

    def update_user(self, nick: str, **changes: Any) -> None:
        """Update user fields (attribute names) for the given nickname."""

    def insert_code(self, code: VerificationCode) -> VerificationCode:
        """Insert a verification code and return it with its id."""

    def find_valid_code(
        self, nick: str, code: str, purpose: CodePurpose, now: datetime
    ) -> VerificationCode | None:
        """Return an unused code expiring after ``now``, or ``None``."""

    def mark_code_used(self, code: VerificationCode) -> None:
        """Flip the consumed flag of the given code."""

    def insert_session(self, record: SessionRecord) -> None:
        """Insert a session row."""

    def get_session(self, token: str) -> SessionRecord | None:
        """Return session row by token regardless of state."""

    def find_device_session(
        self, nick: str, device_id: str, now: datetime
    ) -> SessionRecord | None:
        """Return newest active, unexpired session of a user on a device."""

    def deactivate_device_sessions(self, device_id: str) -> int:
        """Deactivate every active session bound to a device."""

    def deactivate_session(self, token: str) -> None:
        """Deactivate the session identified by token."""


def user_columns(changes: dict[str, Any]) -> dict[str, Any]:
    """Map ``UserRecord`` attribute names to stored column names."""
    columns: dict[str, Any] = {}
    for name, value in changes.items():
        field = UserRecord.model_fields.get(name)
        if field is None:
            raise ValueError(f"Unknown user field: {name}")
        columns[field.alias or name] = value
    return columns


class AuthRepository:
    """Credential store with MongoDB primary and file-store fallback."""

    def __init__(self, state_dir: Path, mongo_uri: str = "", mongo_db: str = "dri") -> None:
        """Initialize repository storage backends."""
        self._fallback_dir = state_dir / "auth_store"
        self._fallback_dir.mkdir(parents=True, exist_ok=True)
        self._users_file = self._fallback_dir / "users.json"
        self._codes_file = self._fallback_dir / "codes.json"
        self._sessions_file = self._fallback_dir / "sessions.json"
        self._lock = Lock()

        self._client: Any | None = None
        self._mongo_users: Any | None = None
        self._mongo_codes: Any | None = None
        self._mongo_sessions: Any | None = None

        if mongo_uri:
            try:
                client: Any = pymongo.MongoClient(
                    mongo_uri, serverSelectionTimeoutMS=3000, tz_aware=True
                )
                client.admin.command("ping")
                db = client[mongo_db]
                self._client = client
                self._mongo_users = db[USERS_TABLE]
                self._mongo_codes = db[CODES_TABLE]
                self._mongo_sessions = db[SESSIONS_TABLE]
                LOGGER.info("AuthRepository using MongoDB: db=%s", mongo_db)
            except PyMongoError:
                LOGGER.exception(
                    "MongoDB connection failed. Falling back to local auth store."
                )
                self._client = None
                self._mongo_users = None
                self._mongo_codes = None
                self._mongo_sessions = None

    def close(self) -> None:
        """Close MongoDB client when connected."""
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def uses_mongo(self) -> bool:
        """Return whether MongoDB is the active backend."""
        return self._mongo_users is not None

    def _read_json_file(self, path: Path) -> list[dict[str, Any]]:
        """Read list payload from JSON file with empty fallback."""
        if not path.exists():
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except Exception:
            LOGGER.exception("Failed reading fallback auth store: %s", path)
            return []
        return payload if isinstance(payload, list) else []

    def _write_json_file(self, path: Path, items: list[dict[str, Any]]) -> None:
        """Persist list payload to JSON file."""
        try:
            path.write_text(
                json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8"
            )
        except OSError as exc:
            raise StoreError(f"Failed writing {path.name}") from exc

    @staticmethod
    def _wrap(exc: PyMongoError, operation: str) -> StoreError:
        LOGGER.error("MongoDB %s failed: %s", operation, exc)
        return StoreError(f"{operation} failed")

    # users

    def get_user(self, nick: str) -> UserRecord | None:
        """Get user by exact nickname."""
        if self._mongo_users is not None:
            try:
                doc = self._mongo_users.find_one({"nick": nick}, {"_id": 0})
            except PyMongoError as exc:
                raise self._wrap(exc, "get_user") from exc
            return UserRecord.model_validate(doc) if doc else None

        for row in self._read_json_file(self._users_file):
            if row.get("nick") == nick:
                return UserRecord.model_validate(row)
        return None

    def insert_user(self, user: UserRecord) -> None:
        """Insert user, enforcing nickname uniqueness."""
        if self._mongo_users is not None:
            try:
                self._mongo_users.insert_one(user.model_dump(by_alias=True))
            except DuplicateKeyError as exc:
                raise DuplicateNickError(user.nick) from exc
            except PyMongoError as exc:
                raise self._wrap(exc, "insert_user") from exc
            return

        with self._lock:
            items = self._read_json_file(self._users_file)
            if any(row.get("nick") == user.nick for row in items):
                raise DuplicateNickError(user.nick)
            items.append(user.model_dump(mode="json", by_alias=True))
            self._write_json_file(self._users_file, items)

    def update_user(self, nick: str, **changes: Any) -> None:
        """Update stored user columns for the nickname."""
        if self._mongo_users is not None:
            columns = user_columns(changes)
            try:
                self._mongo_users.update_one({"nick": nick}, {"$set": columns})
            except PyMongoError as exc:
                raise self._wrap(exc, "update_user") from exc
            return

        with self._lock:
            items = self._read_json_file(self._users_file)
            for index, row in enumerate(items):
                if row.get("nick") != nick:
                    continue
                merged = UserRecord.model_validate(row).model_copy(update=changes)
                items[index] = merged.model_dump(mode="json", by_alias=True)
            self._write_json_file(self._users_file, items)

    # verification codes

    def insert_code(self, code: VerificationCode) -> VerificationCode:
        """Insert verification code, assigning an id when missing."""
        stored = code if code.code_id is not None else code.model_copy(
            update={"code_id": uuid.uuid4().hex}
        )
        if self._mongo_codes is not None:
            try:
                self._mongo_codes.insert_one(stored.model_dump(by_alias=True))
            except PyMongoError as exc:
                raise self._wrap(exc, "insert_code") from exc
            return stored

        with self._lock:
            items = self._read_json_file(self._codes_file)
            items.append(stored.model_dump(mode="json", by_alias=True))
            self._write_json_file(self._codes_file, items)
        return stored

    def find_valid_code(
        self, nick: str, code: str, purpose: CodePurpose, now: datetime
    ) -> VerificationCode | None:
        """Find unused, unexpired code matching nickname and purpose."""
        if self._mongo_codes is not None:
            try:
                doc = self._mongo_codes.find_one(
                    {
                        "usuario_nick": nick,
                        "codigo": code,
                        "tipo": str(purpose),
                        "usado": False,
                        "expira_em": {"$gt": now},
                    },
                    {"_id": 0},
                )
            except PyMongoError as exc:
                raise self._wrap(exc, "find_valid_code") from exc
            return VerificationCode.model_validate(doc) if doc else None

        for row in self._read_json_file(self._codes_file):
            candidate = VerificationCode.model_validate(row)
            if (
                candidate.nick == nick
                and candidate.code == code
                and candidate.purpose is purpose
                and not candidate.used
                and candidate.expires_at > now
            ):
                return candidate
        return None

    def mark_code_used(self, code: VerificationCode) -> None:
        """Mark code consumed by id."""
        if self._mongo_codes is not None:
            try:
                self._mongo_codes.update_one({"id": code.code_id}, {"$set": {"usado": True}})
            except PyMongoError as exc:
                raise self._wrap(exc, "mark_code_used") from exc
            return

        with self._lock:
            items = self._read_json_file(self._codes_file)
            for row in items:
                if row.get("id") == code.code_id:
                    row["usado"] = True
            self._write_json_file(self._codes_file, items)

    # sessions

    def insert_session(self, record: SessionRecord) -> None:
        """Insert session row."""
        if self._mongo_sessions is not None:
            try:
                self._mongo_sessions.insert_one(record.model_dump(by_alias=True))
            except PyMongoError as exc:
                raise self._wrap(exc, "insert_session") from exc
            return

        with self._lock:
            items = self._read_json_file(self._sessions_file)
            items.append(record.model_dump(mode="json", by_alias=True))
            self._write_json_file(self._sessions_file, items)

    def get_session(self, token: str) -> SessionRecord | None:
        """Get session row by token."""
        if self._mongo_sessions is not None:
            try:
                doc = self._mongo_sessions.find_one({"token": token}, {"_id": 0})
            except PyMongoError as exc:
                raise self._wrap(exc, "get_session") from exc
            return SessionRecord.model_validate(doc) if doc else None

        for row in self._read_json_file(self._sessions_file):
            if row.get("token") == token:
                return SessionRecord.model_validate(row)
        return None

    def find_device_session(
        self, nick: str, device_id: str, now: datetime
    ) -> SessionRecord | None:
        """Return newest active, unexpired session for nickname on device."""
        if self._mongo_sessions is not None:
            try:
                doc = self._mongo_sessions.find_one(
                    {
                        "usuario_nick": nick,
                        "device_id": device_id,
                        "ativa": True,
                        "data_expiracao": {"$gt": now},
                    },
                    {"_id": 0},
                    sort=[("data_criacao", pymongo.DESCENDING)],
                )
            except PyMongoError as exc:
                raise self._wrap(exc, "find_device_session") from exc
            return SessionRecord.model_validate(doc) if doc else None

        candidates = [
            record
            for record in (
                SessionRecord.model_validate(row)
                for row in self._read_json_file(self._sessions_file)
            )
            if record.nick == nick
            and record.device_id == device_id
            and record.active
            and record.expires_at > now
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda record: record.created_at)

    def deactivate_device_sessions(self, device_id: str) -> int:
        """Deactivate all active sessions bound to device."""
        if self._mongo_sessions is not None:
            try:
                result = self._mongo_sessions.update_many(
                    {"device_id": device_id, "ativa": True}, {"$set": {"ativa": False}}
                )
            except PyMongoError as exc:
                raise self._wrap(exc, "deactivate_device_sessions") from exc
            return int(result.modified_count)

        count = 0
        with self._lock:
            items = self._read_json_file(self._sessions_file)
            for row in items:
                if row.get("device_id") == device_id and row.get("ativa"):
                    row["ativa"] = False
                    count += 1
            if count:
                self._write_json_file(self._sessions_file, items)
        return count

    def deactivate_session(self, token: str) -> None:
        """Deactivate session identified by token."""
        if self._mongo_sessions is not None:
            try:
                self._mongo_sessions.update_one({"token": token}, {"$set": {"ativa": False}})
            except PyMongoError as exc:
                raise self._wrap(exc, "deactivate_session") from exc
            return

        with self._lock:
            items = self._read_json_file(self._sessions_file)
            for row in items:
                if row.get("token") == token:
                    row["ativa"] = False
            self._write_json_file(self._sessions_file, items)
