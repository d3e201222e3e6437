"""Two-tier local storage for the client-held session snapshot.

Tier A lives as long as the browsing context (the process); tier B is a
durable JSON file written only for "stay signed in" sessions. Reads promote
tier B into an empty tier A.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Protocol

from pydantic import ValidationError

from dri.auth.models import LocalSession

LOGGER = logging.getLogger(__name__)

SESSION_KEY = "dri_session"
USER_KEY = "dri_user"
DEVICE_KEY = "device_id"


class KeyValueStorage(Protocol):
    """String key/value storage in the shape of browser web storage."""

    def get_item(self, key: str) -> str | None:
        """Return stored value or ``None``."""

    def set_item(self, key: str, value: str) -> None:
        """Store value under key."""

    def remove_item(self, key: str) -> None:
        """Remove key when present."""

    def clear(self) -> None:
        """Remove every key."""


class MemoryStorage:
    """Process-lifetime storage (tier A)."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def keys(self) -> list[str]:
        return sorted(self._items)


class JsonFileStorage:
    """Durable storage (tier B) persisted as a single JSON object file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = Lock()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception:
            LOGGER.warning("Ignoring unreadable local storage file: %s", self._path)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(key): str(value) for key, value in payload.items()}

    def _write(self, items: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._read()
            items[key] = value
            self._write(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._read()
            if items.pop(key, None) is not None:
                self._write(items)

    def clear(self) -> None:
        with self._lock:
            self._write({})

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._read())


class TwoTierSessionStore:
    """Owns promotion and demotion of the snapshot between the two tiers."""

    def __init__(self, session_tier: KeyValueStorage, durable_tier: KeyValueStorage) -> None:
        self.session_tier = session_tier
        self.durable_tier = durable_tier

    def read_snapshot(self) -> LocalSession | None:
        """Return the stored snapshot, promoting tier B into an empty tier A."""
        raw = self.session_tier.get_item(SESSION_KEY)
        if not raw:
            raw = self.durable_tier.get_item(SESSION_KEY)
            if raw:
                self.session_tier.set_item(SESSION_KEY, raw)
                self.session_tier.set_item(USER_KEY, self.durable_tier.get_item(USER_KEY) or "")
        if not raw:
            return None
        try:
            return LocalSession.model_validate_json(raw)
        except ValidationError:
            LOGGER.debug("Discarding unparseable local session snapshot")
            return None

    def write_snapshot(self, snapshot: LocalSession) -> None:
        """Write to tier A always and to tier B only for stay-signed-in sessions."""
        raw = snapshot.model_dump_json(by_alias=True)
        self.session_tier.set_item(SESSION_KEY, raw)
        self.session_tier.set_item(USER_KEY, snapshot.nick)
        if snapshot.stay_signed_in:
            self.durable_tier.set_item(SESSION_KEY, raw)
            self.durable_tier.set_item(USER_KEY, snapshot.nick)
        else:
            self.durable_tier.remove_item(SESSION_KEY)
            self.durable_tier.remove_item(USER_KEY)

    def clear(self) -> None:
        """Drop session state from both tiers.

        Unlike wiping the whole browser storage, the durable device id is
        kept so the next login on this machine binds to the same fingerprint.
        """
        for tier in (self.session_tier, self.durable_tier):
            tier.remove_item(SESSION_KEY)
            tier.remove_item(USER_KEY)

    def get_device_id(self) -> str | None:
        return self.durable_tier.get_item(DEVICE_KEY)

    def set_device_id(self, device_id: str) -> None:
        self.durable_tier.set_item(DEVICE_KEY, device_id)
