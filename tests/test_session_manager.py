from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

from dri.auth.models import SessionCheck, UserStatus
from dri.auth.repository import AuthRepository, StoreError
from dri.session.storage import SESSION_KEY, USER_KEY
from tests.fakes import START, FakeClock, make_context, seed_user


class _FailingRepo(AuthRepository):
    def deactivate_session(self, token: str) -> None:
        raise StoreError("backend down")

    def get_session(self, token: str):
        raise StoreError("backend down")


def test_create_then_validate_returns_same_session(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)

    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)
    validation = ctx.sessions.validate_session()

    assert validation.status is SessionCheck.VALID
    assert validation.session is not None
    assert validation.session.token == created.token
    assert validation.session.nick == "alice"
    assert created.token.startswith("sess_")
    assert created.device_id == ctx.fingerprinter.get_device_id()


def test_create_session_records_device_and_user_access(tmp_path: Path) -> None:
    clock = FakeClock()
    ctx = make_context(tmp_path, clock=clock)
    seed_user(ctx.repo, "alice")

    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=False)
    record = ctx.repo.get_session(created.token)
    user = ctx.repo.get_user("alice")

    assert record is not None
    assert record.active is True
    assert record.device_info.platform == "Linux"
    assert record.expires_at == clock.now + timedelta(hours=1)
    assert user is not None
    assert user.last_access == clock.now
    assert user.last_device_id == created.device_id


def test_stay_signed_in_controls_durable_tier(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)

    ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=False)
    assert ctx.local_store.durable_tier.get_item(SESSION_KEY) is None
    assert ctx.local_store.session_tier.get_item(USER_KEY) == "alice"

    remembered = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)
    assert ctx.local_store.durable_tier.get_item(USER_KEY) == "alice"
    assert remembered.expires_at - ctx.repo.get_session(remembered.token).created_at == timedelta(days=5)


def test_expiry_boundary(tmp_path: Path) -> None:
    clock = FakeClock()
    ctx = make_context(tmp_path, clock=clock)
    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=False)

    clock.now = created.expires_at - timedelta(seconds=1)
    assert ctx.sessions.validate_session().status is SessionCheck.VALID

    clock.now = created.expires_at + timedelta(seconds=1)
    assert ctx.sessions.validate_session().status is SessionCheck.REJECTED
    assert ctx.local_store.read_snapshot() is None


def test_inactive_row_rejects_and_clears_local_state(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)

    ctx.repo.deactivate_session(created.token)

    assert ctx.sessions.validate_session().status is SessionCheck.REJECTED
    assert ctx.local_store.read_snapshot() is None


def test_device_mismatch_with_stay_signed_in_requests_revalidation(tmp_path: Path) -> None:
    pages: list[str] = []
    ctx = make_context(tmp_path, on_logout=pages.append)
    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)

    ctx.local_store.set_device_id("dev_otherdevice_1")
    validation = ctx.sessions.validate_session()

    assert validation.status is SessionCheck.REVALIDATE
    assert validation.session is not None
    assert validation.session.token == created.token
    assert ctx.local_store.read_snapshot() is not None
    assert pages == []


def test_device_mismatch_without_stay_signed_in_logs_out(tmp_path: Path) -> None:
    pages: list[str] = []
    ctx = make_context(tmp_path, on_logout=pages.append)
    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=False)

    ctx.local_store.set_device_id("dev_otherdevice_1")
    validation = ctx.sessions.validate_session()

    assert validation.status is SessionCheck.REJECTED
    assert ctx.local_store.read_snapshot() is None
    assert ctx.repo.get_session(created.token).active is False
    assert pages == ["index.html"]


def test_new_login_supersedes_previous_session_on_same_device(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)

    first = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)
    second = ctx.sessions.create_session("bob", "Fiscalizador", stay_signed_in=True)

    assert ctx.repo.get_session(first.token).active is False
    assert ctx.repo.get_session(second.token).active is True
    assert ctx.sessions.current_session().nick == "bob"


def test_validate_device_for_login_adopts_existing_session(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)
    seed_user(ctx.repo, "alice", role="DEV")
    created = ctx.sessions.create_session("alice", "DEV", stay_signed_in=True)
    ctx.local_store.clear()

    adopted = ctx.sessions.validate_device_for_login("alice")

    assert adopted is not None
    assert adopted.token == created.token
    assert adopted.role == "DEV"
    assert ctx.local_store.durable_tier.get_item(USER_KEY) == "alice"
    assert ctx.sessions.validate_session().valid


def test_validate_device_for_login_ignores_other_users_and_blocked_accounts(
    tmp_path: Path,
) -> None:
    ctx = make_context(tmp_path)
    seed_user(ctx.repo, "alice", status=UserStatus.BLOCKED)
    ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)
    ctx.local_store.clear()

    assert ctx.sessions.validate_device_for_login("bob") is None
    assert ctx.sessions.validate_device_for_login("alice") is None
    assert ctx.local_store.read_snapshot() is None


def test_validate_device_for_login_skips_expired_sessions(tmp_path: Path) -> None:
    clock = FakeClock()
    ctx = make_context(tmp_path, clock=clock)
    seed_user(ctx.repo, "alice")
    ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=False)
    ctx.local_store.clear()

    clock.advance(hours=2)

    assert ctx.sessions.validate_device_for_login("alice") is None


def test_logout_twice_is_safe_and_leaves_storage_empty(tmp_path: Path) -> None:
    pages: list[str] = []
    ctx = make_context(tmp_path, on_logout=pages.append)
    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)
    device_id = ctx.fingerprinter.get_device_id()

    ctx.sessions.logout()
    ctx.sessions.logout()

    for tier in (ctx.local_store.session_tier, ctx.local_store.durable_tier):
        assert tier.get_item(SESSION_KEY) is None
        assert tier.get_item(USER_KEY) is None
    assert ctx.local_store.get_device_id() == device_id
    assert ctx.repo.get_session(created.token).active is False
    assert pages == ["index.html", "index.html"]


def test_logout_clears_local_state_when_backend_fails(tmp_path: Path) -> None:
    ctx = make_context(tmp_path, repo=_FailingRepo(tmp_path))
    ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)

    ctx.sessions.logout()

    assert ctx.local_store.read_snapshot() is None


def test_backend_error_during_validation_rejects_without_clearing(tmp_path: Path) -> None:
    ctx = make_context(tmp_path, repo=_FailingRepo(tmp_path))
    ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)

    validation = ctx.sessions.validate_session()

    assert validation.status is SessionCheck.REJECTED
    assert ctx.local_store.read_snapshot() is not None


def test_missing_snapshot_is_rejected(tmp_path: Path) -> None:
    ctx = make_context(tmp_path)

    assert ctx.sessions.validate_session().status is SessionCheck.REJECTED


def test_snapshot_expiry_without_offset_is_read_as_utc(tmp_path: Path) -> None:
    clock = FakeClock()
    ctx = make_context(tmp_path, clock=clock)
    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=False)
    raw = created.model_dump(mode="json", by_alias=True)
    raw["expiracao"] = "2026-10-19T12:30:00"
    ctx.local_store.session_tier.set_item(SESSION_KEY, json.dumps(raw))

    assert ctx.sessions.validate_session().status is SessionCheck.VALID

    clock.advance(minutes=31)
    assert ctx.sessions.validate_session().status is SessionCheck.REJECTED
    assert ctx.local_store.read_snapshot() is None


def test_session_row_expiry_without_offset_is_read_as_utc(tmp_path: Path) -> None:
    clock = FakeClock()
    ctx = make_context(tmp_path, clock=clock)
    created = ctx.sessions.create_session("alice", "Fiscalizador", stay_signed_in=True)
    sessions_file = tmp_path / "auth_store" / "sessions.json"
    rows = json.loads(sessions_file.read_text(encoding="utf-8"))
    rows[0]["data_expiracao"] = "2026-10-19T12:30:00"
    sessions_file.write_text(json.dumps(rows), encoding="utf-8")

    record = ctx.repo.get_session(created.token)
    assert record.expires_at == START + timedelta(minutes=30)
    assert ctx.sessions.validate_session().status is SessionCheck.VALID

    clock.advance(minutes=30)
    assert ctx.sessions.validate_session().status is SessionCheck.REJECTED
    assert ctx.local_store.read_snapshot() is None
