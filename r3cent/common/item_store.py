"""
Item Store

Query access to a user's timeline items. The ask pipeline only needs
`fetch`: a single bounded, type-filtered, newest-first read that never
returns soft-deleted rows.

Two implementations:
- InMemoryItemStore: tests and local experiments
- SQLiteItemStore: same table shape as the hosted D1 `items` table
  (JSON `meta` and JSON `status` columns)
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .schemas import ALL_ITEM_TYPES, Item, ItemType, ensure_utc

logger = logging.getLogger("r3cent.common.item_store")


class StoreError(RuntimeError):
    """The item store could not answer a query"""


class ItemStore(ABC):
    """Abstract item store"""

    @abstractmethod
    def fetch(
        self,
        user_id: str,
        types: Optional[Iterable[ItemType]] = None,
        limit: int = 40,
    ) -> List[Item]:
        """
        Fetch a user's non-deleted items, newest first.

        Args:
            user_id: Owner of the items
            types: Allowed item types; None means all types
            limit: Maximum number of items returned
        """

    @abstractmethod
    def add(self, item: Item) -> None:
        """Insert or replace an item"""

    def add_many(self, items: Iterable[Item]) -> int:
        count = 0
        for item in items:
            self.add(item)
            count += 1
        return count


def _type_filter(types: Optional[Iterable[ItemType]]) -> Sequence[ItemType]:
    if types is None:
        return ALL_ITEM_TYPES
    return [ItemType(t) for t in types]


class InMemoryItemStore(ItemStore):
    """Item store backed by a plain dict keyed by item id"""

    def __init__(self, items: Optional[Iterable[Item]] = None):
        self._items = {}
        for item in items or []:
            self.add(item)

    def add(self, item: Item) -> None:
        self._items[item.id] = item

    def fetch(
        self,
        user_id: str,
        types: Optional[Iterable[ItemType]] = None,
        limit: int = 40,
    ) -> List[Item]:
        allowed = set(_type_filter(types))
        matches = [
            item for item in self._items.values()
            if item.user_id == user_id
            and not item.deleted
            and ItemType(item.type) in allowed
        ]
        matches.sort(key=lambda item: item.timestamp, reverse=True)
        return matches[:max(0, limit)]


SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    source_provider TEXT NOT NULL DEFAULT 'local',
    source_id TEXT,
    ts TEXT NOT NULL,
    title TEXT,
    content TEXT,
    meta TEXT NOT NULL DEFAULT '{}',
    digest TEXT,
    status TEXT NOT NULL DEFAULT '{"pinned":false,"ignored":false,"deleted":false,"tasked":false}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_items_user_type_ts ON items (user_id, type, ts DESC);
"""


def _to_db_ts(ts: datetime) -> str:
    """UTC ISO-8601 so that lexical ORDER BY matches time order"""
    return ensure_utc(ts).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _from_db_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SQLiteItemStore(ItemStore):
    """
    SQLite item store.

    Every query runs with a bounded busy timeout; any sqlite failure is
    re-raised as StoreError so callers see one error type.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0):
        self.db_path = Path(db_path).expanduser()
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connection(self):
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open item store at {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Item store query failed: %s", e)
            raise StoreError(f"Item store query failed: {e}") from e
        finally:
            conn.close()

    def add(self, item: Item) -> None:
        now = _to_db_ts(datetime.now(timezone.utc))
        status = json.dumps({
            "pinned": False,
            "ignored": False,
            "deleted": bool(item.deleted),
            "tasked": False,
        })
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO items
                    (id, user_id, type, source_provider, source_id, ts, title, content,
                     meta, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    item.user_id,
                    ItemType(item.type).value,
                    item.source_provider.value,
                    item.source_id,
                    _to_db_ts(item.timestamp),
                    item.title,
                    item.content,
                    json.dumps(item.metadata or {}),
                    status,
                    now,
                    now,
                ),
            )

    def mark_deleted(self, item_id: str, deleted: bool = True) -> bool:
        """Flip the soft-delete flag; returns False if the item is unknown"""
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE items SET status = json_set(status, '$.deleted', json(?)), updated_at = ? WHERE id = ?",
                ("true" if deleted else "false", _to_db_ts(datetime.now(timezone.utc)), item_id),
            )
            return cursor.rowcount > 0

    def fetch(
        self,
        user_id: str,
        types: Optional[Iterable[ItemType]] = None,
        limit: int = 40,
    ) -> List[Item]:
        allowed = [t.value for t in _type_filter(types)]
        if not allowed:
            return []

        placeholders = ",".join("?" for _ in allowed)
        sql = f"""
            SELECT id, user_id, type, source_provider, source_id, ts, title, content, meta, status
            FROM items
            WHERE user_id = ?
            AND type IN ({placeholders})
            AND json_extract(status, '$.deleted') = 0
            ORDER BY ts DESC
            LIMIT ?
        """
        with self._connection() as conn:
            rows = conn.execute(sql, (user_id, *allowed, max(0, limit))).fetchall()

        return [self._row_to_item(row) for row in rows]

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        status = json.loads(row["status"] or "{}")
        return Item(
            id=row["id"],
            user_id=row["user_id"],
            type=ItemType(row["type"]),
            timestamp=_from_db_ts(row["ts"]),
            title=row["title"],
            content=row["content"],
            metadata=json.loads(row["meta"] or "{}"),
            deleted=bool(status.get("deleted", False)),
            source_provider=row["source_provider"],
            source_id=row["source_id"],
        )
