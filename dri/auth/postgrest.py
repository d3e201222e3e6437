"""Credential store backed by the hosted table service's REST interface.

Rows are addressed with PostgREST-style filters (``col=eq.value``,
``col=gt.value``) and the project's anon key, mirroring what the browser
client sends.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import requests

from dri.auth.models import CodePurpose, SessionRecord, UserRecord, VerificationCode
from dri.auth.repository import (
    CODES_TABLE,
    SESSIONS_TABLE,
    USERS_TABLE,
    DuplicateNickError,
    StoreError,
    user_columns,
)

LOGGER = logging.getLogger(__name__)

_UNIQUE_VIOLATION = "23505"


def _eq(value: Any) -> str:
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def _gt(value: datetime) -> str:
    return f"gt.{value.isoformat()}"


class PostgrestStore:
    """Credential store speaking to ``<base>/rest/v1/<table>``."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: int = 10,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._http = session or requests.Session()
        self._http.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def close(self) -> None:
        self._http.close()

    def _url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str = "",
    ) -> list[dict[str, Any]]:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._http.request(
                method,
                self._url(table),
                params=params,
                json=json_body,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            LOGGER.error("Backend %s %s failed: %s", method, table, exc)
            raise StoreError(f"{method} {table} failed") from exc

        if response.status_code >= 400:
            error_code = ""
            try:
                error_code = str(response.json().get("code") or "")
            except (ValueError, AttributeError):
                pass
            if error_code == _UNIQUE_VIOLATION:
                raise DuplicateNickError(table)
            LOGGER.error(
                "Backend %s %s returned status=%s", method, table, response.status_code
            )
            raise StoreError(f"{method} {table} returned {response.status_code}")

        if not response.content:
            return []
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreError(f"{method} {table} returned invalid JSON") from exc
        return payload if isinstance(payload, list) else [payload]

    def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        return self._request("GET", table, params={"select": "*", **params})

    def _update(self, table: str, params: dict[str, str], values: dict[str, Any]) -> int:
        rows = self._request(
            "PATCH", table, params=params, json_body=values, prefer="return=representation"
        )
        return len(rows)

    def get_user(self, nick: str) -> UserRecord | None:
        rows = self._select(USERS_TABLE, {"nick": _eq(nick), "limit": "1"})
        return UserRecord.model_validate(rows[0]) if rows else None

    def insert_user(self, user: UserRecord) -> None:
        self._request(
            "POST", USERS_TABLE, json_body=[user.model_dump(mode="json", by_alias=True)]
        )

    def update_user(self, nick: str, **changes: Any) -> None:
        values = {
            column: value.isoformat() if isinstance(value, datetime) else value
            for column, value in user_columns(changes).items()
        }
        self._update(USERS_TABLE, {"nick": _eq(nick)}, values)

    def insert_code(self, code: VerificationCode) -> VerificationCode:
        rows = self._request(
            "POST",
            CODES_TABLE,
            json_body=[code.model_dump(mode="json", by_alias=True, exclude_none=True)],
            prefer="return=representation",
        )
        return VerificationCode.model_validate(rows[0]) if rows else code

    def find_valid_code(
        self, nick: str, code: str, purpose: CodePurpose, now: datetime
    ) -> VerificationCode | None:
        rows = self._select(
            CODES_TABLE,
            {
                "usuario_nick": _eq(nick),
                "codigo": _eq(code),
                "tipo": _eq(str(purpose)),
                "usado": _eq(False),
                "expira_em": _gt(now),
                "limit": "1",
            },
        )
        return VerificationCode.model_validate(rows[0]) if rows else None

    def mark_code_used(self, code: VerificationCode) -> None:
        self._update(CODES_TABLE, {"id": _eq(code.code_id)}, {"usado": True})

    def insert_session(self, record: SessionRecord) -> None:
        self._request(
            "POST", SESSIONS_TABLE, json_body=[record.model_dump(mode="json", by_alias=True)]
        )

    def get_session(self, token: str) -> SessionRecord | None:
        rows = self._select(SESSIONS_TABLE, {"token": _eq(token), "limit": "1"})
        return SessionRecord.model_validate(rows[0]) if rows else None

    def find_device_session(
        self, nick: str, device_id: str, now: datetime
    ) -> SessionRecord | None:
        rows = self._select(
            SESSIONS_TABLE,
            {
                "usuario_nick": _eq(nick),
                "device_id": _eq(device_id),
                "ativa": _eq(True),
                "data_expiracao": _gt(now),
                "order": "data_criacao.desc",
                "limit": "1",
            },
        )
        return SessionRecord.model_validate(rows[0]) if rows else None

    def deactivate_device_sessions(self, device_id: str) -> int:
        return self._update(
            SESSIONS_TABLE,
            {"device_id": _eq(device_id), "ativa": _eq(True)},
            {"ativa": False},
        )

    def deactivate_session(self, token: str) -> None:
        self._update(SESSIONS_TABLE, {"token": _eq(token)}, {"ativa": False})
