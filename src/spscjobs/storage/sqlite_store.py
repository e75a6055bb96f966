"""SQLite-backed document store.

Each document is a JSON blob in a single ``documents`` table keyed by
``(collection, key)``. Counters are incremented in SQL so they stay atomic,
and :meth:`SQLiteDocumentStore.modify` runs inside ``BEGIN IMMEDIATE`` so a
read-modify-write cannot interleave with another writer, in this process or
another one.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from spscjobs.exceptions import DocumentNotFoundError, PersistenceError
from spscjobs.storage.base import Document, Filter

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT NOT NULL,
    key         TEXT NOT NULL,
    data        TEXT NOT NULL,
    PRIMARY KEY (collection, key)
);
"""

_OPERATORS = {"==": "=", "!=": "!=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}


def _json_path(field: str) -> str:
    return "$." + field


def _deep_merge(base: Document, patch: Document) -> Document:
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_patch(doc: Document, patch: Document) -> Document:
    """Apply a patch whose keys may be dotted field paths."""
    updated = dict(doc)
    for path, value in patch.items():
        parts = path.split(".")
        target = updated
        for part in parts[:-1]:
            child = target.get(part)
            child = dict(child) if isinstance(child, dict) else {}
            target[part] = child
            target = child
        target[parts[-1]] = value
    return updated


class SQLiteDocumentStore:
    """Persistent document store in a single SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        db_path = Path(db_path)
        if str(db_path) != ":memory:":
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), isolation_level=None, timeout=30)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        logger.info("Document store ready at %s.", db_path)

    # ---- helpers ----

    @contextmanager
    def _translate(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise PersistenceError(f"Persistence {operation} failed: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def _read(self, collection: str, key: str) -> Document | None:
        row = self._conn.execute(
            "SELECT data FROM documents WHERE collection=? AND key=?",
            (collection, key),
        ).fetchone()
        return json.loads(row["data"]) if row else None

    def _write(self, collection: str, key: str, data: Document) -> None:
        self._conn.execute(
            "INSERT INTO documents (collection, key, data) VALUES (?, ?, ?) "
            "ON CONFLICT(collection, key) DO UPDATE SET data=excluded.data",
            (collection, key, json.dumps(data)),
        )

    # ---- reads ----

    def get(self, collection: str, key: str) -> Document | None:
        with self._translate("get"):
            return self._read(collection, key)

    def query(
        self,
        collection: str,
        where: Iterable[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        sql = "SELECT data FROM documents WHERE collection=?"
        params: list[Any] = [collection]
        for field, op, value in where:
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported operator: {op}")
            if value is None and op in ("==", "!="):
                sql += f" AND json_extract(data, ?) IS {'NOT ' if op == '!=' else ''}NULL"
                params.append(_json_path(field))
                continue
            sql += f" AND json_extract(data, ?) {_OPERATORS[op]} ?"
            params.extend([_json_path(field), value])
        if order_by:
            sql += f" ORDER BY json_extract(data, ?) {'DESC' if descending else 'ASC'}"
            params.append(_json_path(order_by))
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._translate("query"):
            rows = self._conn.execute(sql, params).fetchall()
        return [json.loads(r["data"]) for r in rows]

    # ---- writes ----

    def set(self, collection: str, key: str, data: Document, *, merge: bool = False) -> None:
        with self._translate("set"), self._transaction():
            if merge:
                existing = self._read(collection, key)
                if existing is not None:
                    data = _deep_merge(existing, data)
            self._write(collection, key, data)

    def update(self, collection: str, key: str, patch: Document) -> None:
        with self._translate("update"), self._transaction():
            existing = self._read(collection, key)
            if existing is None:
                raise DocumentNotFoundError(f"No document {collection}/{key} to update.")
            self._write(collection, key, _apply_patch(existing, patch))

    def increment(self, collection: str, key: str, field: str, amount: int = 1) -> None:
        path = _json_path(field)
        with self._translate("increment"):
            cur = self._conn.execute(
                "UPDATE documents SET data = json_set(data, ?, "
                "COALESCE(json_extract(data, ?), 0) + ?) "
                "WHERE collection=? AND key=?",
                (path, path, amount, collection, key),
            )
        if cur.rowcount == 0:
            raise DocumentNotFoundError(f"No document {collection}/{key} to increment.")

    def delete(self, collection: str, key: str) -> None:
        with self._translate("delete"):
            self._conn.execute(
                "DELETE FROM documents WHERE collection=? AND key=?", (collection, key)
            )

    def modify(
        self,
        collection: str,
        key: str,
        mutate: Callable[[Document | None], Document | None],
    ) -> Document | None:
        with self._translate("modify"), self._transaction():
            current = self._read(collection, key)
            replacement = mutate(current)
            if replacement is None:
                return current
            self._write(collection, key, replacement)
            return replacement

    def close(self) -> None:
        self._conn.close()
