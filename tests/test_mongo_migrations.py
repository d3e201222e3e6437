from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dri.core.mongo_migrations import MIGRATIONS, apply_mongo_migrations, run_migrations


@dataclass
class _Collection:
    indexes: list[tuple[Any, dict[str, Any]]] = field(default_factory=list)
    docs: list[dict[str, Any]] = field(default_factory=list)

    def create_index(self, keys: Any, **kwargs: Any) -> str:
        self.indexes.append((keys, kwargs))
        return str(keys)

    def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        for doc in self.docs:
            if all(doc.get(key) == value for key, value in query.items()):
                return doc
        return None

    def insert_one(self, doc: dict[str, Any]) -> None:
        self.docs.append(doc)


@dataclass
class _Database:
    collections: dict[str, _Collection] = field(default_factory=dict)

    def __getitem__(self, name: str) -> _Collection:
        return self.collections.setdefault(name, _Collection())


def test_run_migrations_creates_indexes_once() -> None:
    db = _Database()

    applied = run_migrations(db)
    reapplied = run_migrations(db)

    assert applied == [migration_id for migration_id, _ in MIGRATIONS]
    assert reapplied == []
    assert ("nick", {"unique": True}) in db["usuarios"].indexes
    assert ("token", {"unique": True}) in db["sessoes"].indexes
    assert any(
        kwargs.get("name") == "idx_sessoes_user_device_recent"
        for _, kwargs in db["sessoes"].indexes
    )
    recorded = {doc["migration_id"] for doc in db["schema_migrations"].docs}
    assert recorded == set(applied)


def test_apply_mongo_migrations_without_uri_is_noop() -> None:
    apply_mongo_migrations("", "dri")
