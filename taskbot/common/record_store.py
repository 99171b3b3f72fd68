"""
Record Store

Owner-scoped persistence for tasks and ideas.

Every read and write takes the owner id and filters on it in SQL, so one
owner's query can never return another owner's records.

SQLiteRecordStore keeps an FTS5 mirror of content+tags in sync with
triggers. When the SQLite build lacks FTS5, or a match expression is
rejected, full-text search degrades to LIKE matching.
"""

import json
import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .schemas import (
    ClassifiedItem,
    ItemStatus,
    QueryFilters,
    StoredRecord,
    normalize_tag,
    MAX_TAGS,
)

logger = logging.getLogger("taskbot.common.record_store")

TAG_SEARCH_LIMIT = 100
FULL_TEXT_LIMIT = 50


class StoreError(RuntimeError):
    """The underlying database operation failed."""


class ItemValidationError(ValueError):
    """A write was rejected before touching the store."""


class RecordNotFoundError(KeyError):
    """No record with that id exists for that owner."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "record not found"


class RecordStore(ABC):
    """
    Abstract record store.

    All methods are scoped by owner and return empty lists, never None,
    when nothing matches.
    """

    @abstractmethod
    def save(self, owner: str, item: Union[ClassifiedItem, Mapping[str, Any]]) -> int:
        """Persist a new pending record and return its id."""
        pass

    @abstractmethod
    def query(self, owner: str, filters: QueryFilters, limit: int) -> List[StoredRecord]:
        """Equality/range filter query, newest first."""
        pass

    @abstractmethod
    def search_by_tag(
        self, owner: str, tags: Iterable[str], limit: int = TAG_SEARCH_LIMIT
    ) -> List[StoredRecord]:
        """Records carrying any of the tags (exact, case-insensitive), newest first."""
        pass

    @abstractmethod
    def search_full_text(
        self, owner: str, text: str, limit: int = FULL_TEXT_LIMIT
    ) -> List[StoredRecord]:
        """Full-text match over content and tags; terms joined by ``OR``."""
        pass

    @abstractmethod
    def get(self, owner: str, record_id: int) -> Optional[StoredRecord]:
        pass

    @abstractmethod
    def update_status(self, owner: str, record_id: int, status: Union[ItemStatus, str]) -> StoredRecord:
        pass

    @abstractmethod
    def update_tags(self, owner: str, record_id: int, tags: Iterable[str]) -> StoredRecord:
        pass

    @abstractmethod
    def delete(self, owner: str, record_id: int) -> None:
        pass

    @abstractmethod
    def list_untagged(self, owner: Optional[str] = None) -> List[StoredRecord]:
        pass

    @abstractmethod
    def stats(self, owner: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def categories(self, owner: str) -> List[str]:
        pass


_SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('task', 'idea')),
    content TEXT NOT NULL,
    priority TEXT NOT NULL DEFAULT 'none'
        CHECK (priority IN ('high', 'medium', 'low', 'none')),
    category TEXT NOT NULL DEFAULT 'personal',
    deadline TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'completed', 'cancelled')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_items_owner_created ON items (owner_id, created_at);
CREATE INDEX IF NOT EXISTS idx_items_owner_status ON items (owner_id, status);
CREATE INDEX IF NOT EXISTS idx_items_owner_type ON items (owner_id, type);
CREATE INDEX IF NOT EXISTS idx_items_owner_deadline ON items (owner_id, deadline);
"""

_FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(
    content, tags, content='items', content_rowid='id'
);
CREATE TRIGGER IF NOT EXISTS items_fts_ai AFTER INSERT ON items BEGIN
    INSERT INTO items_fts (rowid, content, tags) VALUES (new.id, new.content, new.tags);
END;
CREATE TRIGGER IF NOT EXISTS items_fts_ad AFTER DELETE ON items BEGIN
    INSERT INTO items_fts (items_fts, rowid, content, tags)
    VALUES ('delete', old.id, old.content, old.tags);
END;
CREATE TRIGGER IF NOT EXISTS items_fts_au AFTER UPDATE ON items BEGIN
    INSERT INTO items_fts (items_fts, rowid, content, tags)
    VALUES ('delete', old.id, old.content, old.tags);
    INSERT INTO items_fts (rowid, content, tags) VALUES (new.id, new.content, new.tags);
END;
"""

_OR_SPLIT = re.compile(r"\s+OR\s+")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteRecordStore(RecordStore):
    """
    SQLite implementation of RecordStore.

    Opens a connection per operation, so concurrent requests never share
    cursor state. Use a file path; ``:memory:`` would give every operation
    a fresh empty database.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.path = str(Path(self.path).expanduser())
        self.fts_enabled = False
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self):
        try:
            conn = sqlite3.connect(self.path, timeout=10.0)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
            try:
                conn.executescript(_FTS_SCHEMA)
                self.fts_enabled = True
            except sqlite3.OperationalError as e:
                logger.warning("FTS5 unavailable, full-text search uses LIKE: %s", e)
        logger.debug("Record store ready at %s (fts=%s)", self.path, self.fts_enabled)

    @staticmethod
    def _to_record(row: sqlite3.Row) -> StoredRecord:
        try:
            tags = json.loads(row["tags"] or "[]")
        except json.JSONDecodeError:
            tags = []
        return StoredRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            kind=row["type"],
            content=row["content"],
            priority=row["priority"],
            category=row["category"],
            deadline=row["deadline"],
            tags=tags,
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _require_owner(owner: str) -> str:
        if not owner or not str(owner).strip():
            raise ItemValidationError("owner id is required")
        return str(owner)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, owner: str, item: Union[ClassifiedItem, Mapping[str, Any]]) -> int:
        owner = self._require_owner(owner)
        if not isinstance(item, ClassifiedItem):
            if not isinstance(item, Mapping):
                raise ItemValidationError(f"cannot save object of type {type(item).__name__}")
            try:
                item = ClassifiedItem.model_validate(dict(item))
            except ValidationError as e:
                raise ItemValidationError(f"invalid item: {e}") from e

        now = _utcnow()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO items
                    (owner_id, type, content, priority, category, deadline, tags,
                     status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    owner,
                    item.kind.value,
                    item.content,
                    item.priority.value,
                    item.category,
                    item.deadline.isoformat() if item.deadline else None,
                    json.dumps(item.tags),
                    ItemStatus.PENDING.value,
                    now,
                    now,
                ),
            )
            record_id = cursor.lastrowid
        logger.debug("Saved %s %d for %s", item.kind.value, record_id, owner)
        return record_id

    def update_status(self, owner: str, record_id: int, status: Union[ItemStatus, str]) -> StoredRecord:
        owner = self._require_owner(owner)
        try:
            status = ItemStatus(status)
        except ValueError as e:
            raise ItemValidationError(
                f"invalid status {status!r}; expected one of "
                f"{', '.join(s.value for s in ItemStatus)}"
            ) from e
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE items SET status = ?, updated_at = ? WHERE id = ? AND owner_id = ?",
                (status.value, _utcnow(), record_id, owner),
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"item {record_id} not found")
        return self.get(owner, record_id)

    def update_tags(self, owner: str, record_id: int, tags: Iterable[str]) -> StoredRecord:
        owner = self._require_owner(owner)
        clean = [t for t in (normalize_tag(t) for t in tags) if t][:MAX_TAGS]
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE items SET tags = ?, updated_at = ? WHERE id = ? AND owner_id = ?",
                (json.dumps(clean), _utcnow(), record_id, owner),
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"item {record_id} not found")
        return self.get(owner, record_id)

    def delete(self, owner: str, record_id: int) -> None:
        owner = self._require_owner(owner)
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM items WHERE id = ? AND owner_id = ?", (record_id, owner)
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"item {record_id} not found")
        logger.info("Deleted item %d for %s", record_id, owner)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, owner: str, record_id: int) -> Optional[StoredRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM items WHERE id = ? AND owner_id = ?", (record_id, owner)
            ).fetchone()
        return self._to_record(row) if row else None

    def query(self, owner: str, filters: QueryFilters, limit: int) -> List[StoredRecord]:
        clauses = ["owner_id = ?"]
        params: List[Any] = [owner]

        if filters.type:
            clauses.append("type = ?")
            params.append(filters.type.value)
        if filters.priority:
            clauses.append("priority = ?")
            params.append(filters.priority.value)
        if filters.status:
            clauses.append("status = ?")
            params.append(filters.status.value)
        if filters.category:
            clauses.append("category = ?")
            params.append(filters.category.lower())
        if filters.deadline_from:
            clauses.append("deadline >= ?")
            params.append(filters.deadline_from.isoformat())
        if filters.deadline_to:
            clauses.append("deadline <= ?")
            params.append(filters.deadline_to.isoformat())

        sql = (
            f"SELECT * FROM items WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, id DESC LIMIT ?"
        )
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._to_record(r) for r in rows]

    def search_by_tag(
        self, owner: str, tags: Iterable[str], limit: int = TAG_SEARCH_LIMIT
    ) -> List[StoredRecord]:
        wanted = sorted({str(t).strip().lower() for t in tags if str(t).strip()})
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        sql = f"""
            SELECT * FROM items
            WHERE owner_id = ?
              AND EXISTS (
                  SELECT 1 FROM json_each(items.tags)
                  WHERE lower(json_each.value) IN ({placeholders})
              )
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        """
        with self._connect() as conn:
            rows = conn.execute(sql, [owner, *wanted, limit]).fetchall()
        return [self._to_record(r) for r in rows]

    def search_full_text(
        self, owner: str, text: str, limit: int = FULL_TEXT_LIMIT
    ) -> List[StoredRecord]:
        terms = [t.strip() for t in _OR_SPLIT.split(text or "") if t.strip()]
        if not terms:
            return []

        if self.fts_enabled:
            match_expr = " OR ".join('"{}"'.format(t.replace('"', '""')) for t in terms)
            with self._connect() as conn:
                try:
                    rows = conn.execute(
                        """
                        SELECT items.* FROM items_fts
                        JOIN items ON items.id = items_fts.rowid
                        WHERE items_fts MATCH ? AND items.owner_id = ?
                        ORDER BY items_fts.rank
                        LIMIT ?
                        """,
                        (match_expr, owner, limit),
                    ).fetchall()
                    return [self._to_record(r) for r in rows]
                except sqlite3.OperationalError as e:
                    logger.warning("FTS match failed for %r, using LIKE: %s", match_expr, e)

        return self._search_like(owner, terms, limit)

    def _search_like(self, owner: str, terms: List[str], limit: int) -> List[StoredRecord]:
        likes = []
        params: List[Any] = [owner]
        for term in terms:
            likes.append("(content LIKE ? OR tags LIKE ?)")
            pattern = f"%{term}%"
            params.extend([pattern, pattern])
        sql = (
            f"SELECT * FROM items WHERE owner_id = ? AND ({' OR '.join(likes)}) "
            "ORDER BY created_at DESC, id DESC LIMIT ?"
        )
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._to_record(r) for r in rows]

    def list_untagged(self, owner: Optional[str] = None) -> List[StoredRecord]:
        sql = "SELECT * FROM items WHERE (tags IS NULL OR tags = '[]' OR tags = '')"
        params: List[Any] = []
        if owner:
            sql += " AND owner_id = ?"
            params.append(owner)
        sql += " ORDER BY created_at DESC, id DESC"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._to_record(r) for r in rows]

    def stats(self, owner: str) -> Dict[str, Any]:
        """Counts by type, status, pending priority and category."""
        def _grouped(conn, column: str, extra: str = "") -> Dict[str, int]:
            rows = conn.execute(
                f"SELECT {column} AS key, COUNT(*) AS n FROM items "
                f"WHERE owner_id = ? {extra} GROUP BY {column}",
                (owner,),
            ).fetchall()
            return {r["key"]: r["n"] for r in rows}

        with self._connect() as conn:
            by_type = _grouped(conn, "type")
            by_status = _grouped(conn, "status")
            by_priority = _grouped(conn, "priority", "AND status = 'pending'")
            by_category = _grouped(conn, "category")

        return {
            "total": sum(by_type.values()),
            "tasks": by_type.get("task", 0),
            "ideas": by_type.get("idea", 0),
            "by_status": by_status,
            "by_priority": by_priority,
            "by_category": by_category,
        }

    def categories(self, owner: str) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT category FROM items WHERE owner_id = ? ORDER BY category",
                (owner,),
            ).fetchall()
        return [r["category"] for r in rows]
