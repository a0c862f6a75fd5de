"""
💾 OUTREACH STORE - SUPABASE ADAPTER
====================================
Row-level access to the prospects, offerings, prospect_activities and
generation_requests tables.

Client failures surface as PersistenceError. Reads are retried with backoff.
Every write (upserts, conditional updates, inserts, deletes) runs once here;
the state machine owns the retry policy for mutating writes.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, date

from supabase import create_client, Client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from loguru import logger

from config.settings import settings
from models.errors import PersistenceError

read_retry = retry(
    retry=retry_if_exception_type(PersistenceError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class DatabaseConnection:
    """
    Supabase-backed store.

    Usage:
        from database.connection import get_database

        db = get_database()

        # Create-or-update keyed by id
        db.upsert("prospects", row, conflict_columns=["id"])

        # Owner-scoped listing
        rows = db.query("prospects", filters={"owner_id": owner_id}, order_by="-compatibility_score")

        # Write only if nobody bumped the version meanwhile
        row = db.update_where("prospects", {"id": pid, "version": 3}, changes)
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client
        if self._client is None:
            self._connect()

    def _connect(self):
        url = settings.database.supabase_url
        key = settings.database.supabase_key

        if not url or not key:
            logger.warning("⚠️ No Supabase credentials, store is offline")
            logger.info("Set SUPABASE_URL and SUPABASE_KEY (or DATABASE_BACKEND=memory)")
            return

        try:
            self._client = create_client(url, key)
            logger.info("✅ Outreach store connected")
        except Exception as e:
            logger.error(f"❌ Could not reach Supabase: {e}")
            raise PersistenceError(f"Could not reach Supabase: {e}") from e

    @property
    def client(self) -> Client:
        if self._client is None:
            self._connect()
        if self._client is None:
            raise PersistenceError("Supabase client is not configured")
        return self._client

    def insert(
        self,
        table: str,
        data: Dict[str, Any]
    ) -> Optional[Dict]:
        """
        Append one row (activity and generation audit entries).

        Returns:
            The stored row, or None if Supabase echoed nothing back
        """
        try:
            response = self.client.table(table).insert(self._to_json(data)).execute()
            if response.data:
                logger.debug(f"+1 row in {table}")
                return response.data[0]
            return None

        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"❌ {table} insert failed: {e}")
            raise PersistenceError(f"{table} insert failed: {e}") from e

    def upsert(
        self,
        table: str,
        data: Dict[str, Any],
        conflict_columns: List[str]
    ) -> Optional[Dict]:
        """
        Create the row, or overwrite it when one with the same key exists.

        Args:
            table: Target table
            data: Full row
            conflict_columns: Key columns, usually ["id"]
        """
        try:
            response = (
                self.client
                .table(table)
                .upsert(self._to_json(data), on_conflict=",".join(conflict_columns))
                .execute()
            )
            if response.data:
                logger.debug(f"Upserted {data.get('id', '?')} in {table}")
                return response.data[0]
            return None

        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"❌ {table} upsert failed: {e}")
            raise PersistenceError(f"{table} upsert failed: {e}") from e

    @read_retry
    def query(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        """
        Select rows.

        Args:
            filters: Equality filters. A list value means IN, None means IS NULL
            order_by: Column, prefixed with - for descending
            limit / offset: Paging window
        """
        try:
            query = self._apply_filters(self.client.table(table).select(columns), filters)

            if order_by:
                descending = order_by.startswith("-")
                query = query.order(order_by.lstrip("-"), desc=descending)
            if limit:
                query = query.limit(limit)
            if offset:
                query = query.offset(offset)

            return query.execute().data or []

        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"❌ {table} read failed: {e}")
            raise PersistenceError(f"{table} read failed: {e}") from e

    def get_by_id(self, table: str, id: str) -> Optional[Dict]:
        rows = self.query(table, filters={"id": id}, limit=1)
        return rows[0] if rows else None

    def update_where(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> Optional[Dict]:
        """
        Update the row matching every filter.

        Returns the updated row, or None when nothing matched (typically the
        version filter no longer holds because another writer got there first).
        """
        try:
            query = self._apply_filters(self.client.table(table).update(self._to_json(data)), filters)
            response = query.execute()
            if response.data:
                logger.debug(f"Updated {table} where {filters}")
                return response.data[0]
            return None

        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"❌ {table} update failed: {e}")
            raise PersistenceError(f"{table} update failed: {e}") from e

    def update(
        self,
        table: str,
        id: str,
        data: Dict[str, Any]
    ) -> Optional[Dict]:
        return self.update_where(table, {"id": id}, data)

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete rows matching every filter. Returns how many went."""
        try:
            query = self._apply_filters(self.client.table(table).delete(), filters)
            deleted = len(query.execute().data or [])
            logger.debug(f"-{deleted} row(s) in {table}")
            return deleted
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"❌ {table} delete failed: {e}")
            raise PersistenceError(f"{table} delete failed: {e}") from e

    def delete(self, table: str, id: str) -> bool:
        return self.delete_where(table, {"id": id}) > 0

    @staticmethod
    def _apply_filters(query, filters: Optional[Dict[str, Any]]):
        for col, val in (filters or {}).items():
            if isinstance(val, (list, tuple, set)):
                query = query.in_(col, list(val))
            elif val is None:
                query = query.is_(col, "null")
            else:
                query = query.eq(col, val)
        return query

    @staticmethod
    def _to_json(data: Dict[str, Any]) -> Dict[str, Any]:
        # Timestamps go over the wire as ISO strings
        return {
            key: value.isoformat() if isinstance(value, (datetime, date)) else value
            for key, value in data.items()
        }


_instance = None


def get_database():
    """
    Return the process-wide store for the configured backend.

    DATABASE_BACKEND=supabase (default) uses Supabase; DATABASE_BACKEND=memory
    keeps everything in process, which is what the tests and local demos use.
    """
    global _instance
    if _instance is None:
        if settings.database.database_backend == "memory":
            from database.memory import InMemoryDatabase
            _instance = InMemoryDatabase()
            logger.info("💾 Using in-memory database backend")
        else:
            _instance = DatabaseConnection()
    return _instance
