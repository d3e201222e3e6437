"""Explicit client context replacing module-level shared objects.

``build_context`` wires every collaborator from ``AppConfig``; the caller owns
the returned context and must ``close`` it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dri.auth.postgrest import PostgrestStore
from dri.auth.repository import AuthRepository
from dri.auth.service import AuthService
from dri.core.clock import Clock, utc_now
from dri.core.config import AppConfig
from dri.core.mongo_migrations import apply_mongo_migrations
from dri.identity.profile import ProfileVerifier
from dri.session.device import DeviceFingerprinter, EnvironmentSignals
from dri.session.manager import SessionManager
from dri.session.storage import (
    JsonFileStorage,
    KeyValueStorage,
    MemoryStorage,
    TwoTierSessionStore,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class ClientContext:
    """Collaborators shared by the auth facade and page guards of one client."""

    config: AppConfig
    repo: AuthRepository | PostgrestStore
    local_store: TwoTierSessionStore
    fingerprinter: DeviceFingerprinter
    verifier: ProfileVerifier
    sessions: SessionManager
    auth: AuthService

    def close(self) -> None:
        """Release network clients held by the context."""
        self.repo.close()
        self.verifier.close()


def build_store(config: AppConfig) -> AuthRepository | PostgrestStore:
    """Pick the hosted REST backend when configured, else Mongo/file store.

    Mongo indexes (including the unique nick index) are migrated before the
    repository is handed out, so every entry point gets them.
    """
    if config.store.backend_url:
        LOGGER.info("Using hosted table backend: %s", config.store.backend_url)
        return PostgrestStore(
            config.store.backend_url,
            config.store.backend_key,
            timeout_seconds=config.profile.timeout_seconds,
        )
    if config.store.mongo_uri:
        apply_mongo_migrations(config.store.mongo_uri, config.store.mongo_db)
    return AuthRepository(
        Path(config.store.state_dir),
        mongo_uri=config.store.mongo_uri,
        mongo_db=config.store.mongo_db,
    )


def build_context(
    config: AppConfig,
    *,
    repo: AuthRepository | PostgrestStore | None = None,
    verifier: ProfileVerifier | None = None,
    session_tier: KeyValueStorage | None = None,
    durable_tier: KeyValueStorage | None = None,
    signals: EnvironmentSignals | None = None,
    clock: Clock = utc_now,
    on_logout: Callable[[str], None] | None = None,
) -> ClientContext:
    """Construct a fully wired client context."""
    state_dir = Path(config.store.state_dir)
    local_store = TwoTierSessionStore(
        session_tier if session_tier is not None else MemoryStorage(),
        durable_tier
        if durable_tier is not None
        else JsonFileStorage(state_dir / "durable_storage.json"),
    )
    store = repo if repo is not None else build_store(config)
    profile_verifier = verifier or ProfileVerifier(
        config.profile.base_url, config.profile.timeout_seconds
    )
    fingerprinter = DeviceFingerprinter(local_store, signals)
    sessions = SessionManager(
        store,
        local_store,
        fingerprinter,
        config.session,
        clock=clock,
        on_logout=on_logout,
    )
    auth = AuthService(
        store,
        profile_verifier,
        local_store,
        config.verification,
        config.session,
        sessions=sessions,
        clock=clock,
    )
    return ClientContext(
        config=config,
        repo=store,
        local_store=local_store,
        fingerprinter=fingerprinter,
        verifier=profile_verifier,
        sessions=sessions,
        auth=auth,
    )
