"""
🧠 IN-MEMORY DATABASE
=====================
Process-local store with the same surface as DatabaseConnection.

Used for tests and local demos (DATABASE_BACKEND=memory). Rows are copied in
and out so callers can never mutate stored state by accident, and every
operation runs under one lock so conditional updates are atomic.
"""

import copy
import threading
from datetime import datetime, date
from typing import Any, Dict, List, Optional

from loguru import logger

from models.errors import PersistenceError
from models.outreach import new_id


class InMemoryDatabase:
    """
    Dict-backed tables keyed by ``id``.

    Usage:
        db = InMemoryDatabase()
        db.upsert("prospects", {"id": "p1", "owner_id": "o1"}, conflict_columns=["id"])
        db.query("prospects", filters={"owner_id": "o1"})
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def insert(self, table: str, data: Dict[str, Any]) -> Optional[Dict]:
        row = self._to_json(data)
        with self._lock:
            rows = self._table(table)
            if "id" not in row:
                row["id"] = new_id()
            elif row["id"] in rows:
                raise PersistenceError(f"{table} insert failed: duplicate id {row['id']}")
            rows[row["id"]] = row
            logger.debug(f"Inserted record into {table}")
            return copy.deepcopy(row)

    def upsert(
        self,
        table: str,
        data: Dict[str, Any],
        conflict_columns: List[str]
    ) -> Optional[Dict]:
        row = self._to_json(data)
        with self._lock:
            rows = self._table(table)
            for key, existing in rows.items():
                if all(existing.get(c) == row.get(c) for c in conflict_columns):
                    existing.update(row)
                    logger.debug(f"Upserted record in {table}")
                    return copy.deepcopy(existing)
            return self.insert(table, row)

    def query(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        with self._lock:
            rows = [
                copy.deepcopy(r) for r in self._table(table).values()
                if self._matches(r, filters)
            ]

        if order_by:
            desc = order_by.startswith("-")
            column = order_by.lstrip("-")
            # None sorts last in either direction
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=desc)
            rows = present + missing

        if offset:
            rows = rows[offset:]
        if limit:
            rows = rows[:limit]
        return rows

    def get_by_id(self, table: str, id: str) -> Optional[Dict]:
        results = self.query(table, filters={"id": id}, limit=1)
        return results[0] if results else None

    def update_where(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> Optional[Dict]:
        changes = self._to_json(data)
        with self._lock:
            for row in self._table(table).values():
                if self._matches(row, filters):
                    row.update(changes)
                    logger.debug(f"Updated record in {table} where {filters}")
                    return copy.deepcopy(row)
        return None

    def update(self, table: str, id: str, data: Dict[str, Any]) -> Optional[Dict]:
        return self.update_where(table, {"id": id}, data)

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        with self._lock:
            rows = self._table(table)
            doomed = [key for key, row in rows.items() if self._matches(row, filters)]
            for key in doomed:
                del rows[key]
        logger.debug(f"Deleted {len(doomed)} record(s) from {table}")
        return len(doomed)

    def delete(self, table: str, id: str) -> bool:
        return self.delete_where(table, {"id": id}) > 0

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        for col, val in (filters or {}).items():
            if isinstance(val, (list, tuple, set)):
                if row.get(col) not in val:
                    return False
            elif row.get(col) != val:
                return False
        return True

    @staticmethod
    def _to_json(data: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in data.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            else:
                result[key] = copy.deepcopy(value)
        return result
