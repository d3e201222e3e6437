"""Versioned MongoDB schema migrations for credential store collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from pymongo.errors import PyMongoError

from dri.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_20261019_01_core_indexes(db: Any) -> None:
    db["usuarios"].create_index("nick", unique=True)
    db["codigos_verificacao"].create_index("id", unique=True)
    db["codigos_verificacao"].create_index(
        [("usuario_nick", pymongo.ASCENDING), ("codigo", pymongo.ASCENDING)]
    )
    db["sessoes"].create_index("token", unique=True)
    db["sessoes"].create_index(
        [("device_id", pymongo.ASCENDING), ("ativa", pymongo.ASCENDING)]
    )


def _migration_20261019_02_session_lookup(db: Any) -> None:
    db["sessoes"].create_index(
        [
            ("usuario_nick", pymongo.ASCENDING),
            ("device_id", pymongo.ASCENDING),
            ("data_criacao", pymongo.DESCENDING),
        ],
        name="idx_sessoes_user_device_recent",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20261019_01_core_indexes", _migration_20261019_01_core_indexes),
    ("20261019_02_session_lookup", _migration_20261019_02_session_lookup),
]


def run_migrations(db: Any) -> list[str]:
    """Apply pending migrations to ``db`` and return the ids applied."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )
        applied.append(migration_id)
    return applied


def apply_mongo_migrations(mongo_uri: str, mongo_db: str) -> None:
    """Apply MongoDB migrations if a MongoDB URI is configured."""
    if not mongo_uri:
        return

    client: Any = pymongo.MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
    try:
        client.admin.command("ping")
        applied = run_migrations(client[mongo_db])
        if applied:
            LOGGER.info("Applied MongoDB migrations: %s", ", ".join(applied))
    except PyMongoError:
        LOGGER.exception("MongoDB migrations skipped")
    finally:
        client.close()
