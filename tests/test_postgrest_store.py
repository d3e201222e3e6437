from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import pytest
import requests

from dri.auth.models import CodePurpose, UserRecord, VerificationCode
from dri.auth.postgrest import PostgrestStore
from dri.auth.repository import DuplicateNickError, StoreError
from tests.fakes import START


@dataclass
class _Response:
    status_code: int = 200
    payload: Any = None

    @property
    def content(self) -> bytes:
        return b"" if self.payload is None else json.dumps(self.payload).encode("utf-8")

    def json(self) -> Any:
        if self.payload is None:
            raise ValueError("no body")
        return self.payload


@dataclass
class _Session:
    responses: list[Any] = field(default_factory=list)
    calls: list[dict[str, Any]] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    closed: bool = False

    def request(self, method: str, url: str, **kwargs: Any) -> _Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def _store(*responses: Any) -> tuple[PostgrestStore, _Session]:
    session = _Session(responses=list(responses))
    store = PostgrestStore(
        "https://db.example.test/", "anon-key", timeout_seconds=3, session=session  # type: ignore[arg-type]
    )
    return store, session


def test_postgrest_store_sends_api_key_headers() -> None:
    store, session = _store()

    store.close()

    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer anon-key"
    assert session.closed is True


def test_get_user_builds_equality_filter() -> None:
    row = {
        "nick": "alice",
        "senha": "hash",
        "cargo": "DEV",
        "verificado": True,
        "status": "ATIVO",
        "data_criacao": START.isoformat(),
    }
    store, session = _store(_Response(payload=[row]))

    user = store.get_user("alice")

    assert user is not None
    assert user.role == "DEV"
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://db.example.test/rest/v1/usuarios"
    assert call["params"]["nick"] == "eq.alice"
    assert call["timeout"] == 3


def test_get_user_missing_returns_none() -> None:
    store, _ = _store(_Response(payload=[]))

    assert store.get_user("ghost") is None


def test_insert_user_unique_violation_raises_duplicate() -> None:
    store, session = _store(_Response(status_code=409, payload={"code": "23505"}))

    with pytest.raises(DuplicateNickError):
        store.insert_user(UserRecord(nick="alice", password_hash="h", created_at=START))

    assert session.calls[0]["json"][0]["senha"] == "h"


def test_transport_and_server_errors_raise_store_error() -> None:
    store, _ = _store(
        requests.ConnectionError("offline"),
        _Response(status_code=500, payload={"message": "boom"}),
    )

    with pytest.raises(StoreError):
        store.get_session("t1")
    with pytest.raises(StoreError):
        store.get_session("t1")


def test_find_valid_code_filters_by_purpose_and_expiry() -> None:
    store, session = _store(_Response(payload=[]))

    assert store.find_valid_code("alice", "K-482", CodePurpose.PASSWORD_RESET, START) is None

    params = session.calls[0]["params"]
    assert params["tipo"] == "eq.REDEFINIR"
    assert params["usado"] == "eq.false"
    assert params["expira_em"] == f"gt.{START.isoformat()}"


def test_insert_code_returns_server_assigned_id() -> None:
    code = VerificationCode(
        nick="alice", code="K-482", purpose=CodePurpose.ACCOUNT_CREATION, expires_at=START
    )
    returned = code.model_dump(mode="json", by_alias=True)
    returned["id"] = 17
    store, session = _store(_Response(status_code=201, payload=[returned]))

    stored = store.insert_code(code)

    assert stored.code_id == 17
    assert "id" not in session.calls[0]["json"][0]
    assert session.calls[0]["headers"] == {"Prefer": "return=representation"}


def test_deactivate_device_sessions_counts_updated_rows() -> None:
    store, session = _store(_Response(payload=[{"token": "a"}, {"token": "b"}]))

    count = store.deactivate_device_sessions("dev_a")

    assert count == 2
    call = session.calls[0]
    assert call["method"] == "PATCH"
    assert call["params"] == {"device_id": "eq.dev_a", "ativa": "eq.true"}
    assert call["json"] == {"ativa": False}


def test_update_user_serializes_datetimes() -> None:
    store, session = _store(_Response(payload=[]))

    store.update_user("alice", last_access=START, last_device_id="dev_a")

    assert session.calls[0]["json"] == {
        "ultimo_acesso": START.isoformat(),
        "ultimo_device_id": "dev_a",
    }


def test_offsetless_backend_timestamps_are_read_as_utc() -> None:
    row = {
        "usuario_nick": "alice",
        "token": "sess_1",
        "device_id": "dev_a",
        "data_criacao": "2026-10-19T12:00:00",
        "data_expiracao": "2026-10-19T13:00:00",
        "ativa": True,
        "manter_conectado": False,
    }
    store, _ = _store(_Response(payload=[row]))

    record = store.get_session("sess_1")

    assert record is not None
    assert record.created_at == START
    assert record.expires_at.utcoffset() == timedelta(0)


def test_find_device_session_sends_utc_bounds_newest_first() -> None:
    store, session = _store(_Response(payload=[]))

    store.find_device_session("alice", "dev_a", START)

    params = session.calls[0]["params"]
    assert params["data_expiracao"] == "gt.2026-10-19T12:00:00+00:00"
    assert params["order"] == "data_criacao.desc"
