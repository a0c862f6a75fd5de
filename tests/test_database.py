"""Tests for the storage adapters and repositories."""

from unittest.mock import MagicMock, patch

import pytest

from database.connection import DatabaseConnection
from database.memory import InMemoryDatabase
from database.repository import ProspectRepository
from models.errors import PersistenceError
from models.outreach import Prospect
from orchestration.outreach_state import OutreachStateMachine

from conftest import OTHER_OWNER, OWNER, prospect_data


def chain_client(data=None, error=None):
    """Supabase client double whose query builder returns itself."""
    query = MagicMock()
    for method in ("select", "insert", "upsert", "update", "delete",
                   "eq", "in_", "is_", "order", "limit", "offset"):
        getattr(query, method).return_value = query
    if error is not None:
        query.execute.side_effect = error
    else:
        query.execute.return_value = MagicMock(data=data)
    client = MagicMock()
    client.table.return_value = query
    return client, query


class OutageClient:
    """Supabase double where reads find nothing and every upsert fails."""

    def __init__(self):
        self.calls = []

    def table(self, name):
        return OutageQuery(self.calls)


class OutageQuery:

    def __init__(self, calls):
        self.calls = calls
        self.action = None

    def _record(self, action):
        self.action = action
        self.calls.append(action)
        return self

    def select(self, *args, **kwargs):
        return self._record("select")

    def upsert(self, *args, **kwargs):
        return self._record("upsert")

    def eq(self, *args, **kwargs):
        return self

    in_ = is_ = order = limit = offset = eq

    def execute(self):
        if self.action == "upsert":
            raise RuntimeError("service unavailable")
        return MagicMock(data=[])


class TestInMemoryDatabase:

    def test_conditional_update_only_matches_expected_version(self):
        db = InMemoryDatabase()
        db.insert("prospects", {"id": "p-1", "version": 1, "name": "A"})

        assert db.update_where("prospects", {"id": "p-1", "version": 2}, {"name": "B"}) is None
        row = db.update_where("prospects", {"id": "p-1", "version": 1}, {"name": "B", "version": 2})

        assert row["name"] == "B"
        assert db.get_by_id("prospects", "p-1")["version"] == 2

    def test_rows_are_copied(self):
        db = InMemoryDatabase()
        db.insert("offerings", {"id": "o-1", "features": ["a"]})

        db.query("offerings")[0]["features"].append("b")

        assert db.get_by_id("offerings", "o-1")["features"] == ["a"]

    def test_ordering_paging_and_list_filters(self):
        db = InMemoryDatabase()
        for i, score in enumerate([40, 100, None, 75]):
            db.insert("prospects", {"id": f"p-{i}", "owner_id": OWNER, "score": score})

        ordered = [r["id"] for r in db.query("prospects", order_by="-score")]
        assert ordered == ["p-1", "p-3", "p-0", "p-2"]
        assert [r["id"] for r in db.query("prospects", order_by="-score", limit=2, offset=1)] == ["p-3", "p-0"]
        assert len(db.query("prospects", filters={"id": ["p-0", "p-1"]})) == 2

    def test_generated_ids_survive_deletes(self):
        db = InMemoryDatabase()
        first = db.insert("prospect_activities", {"details": "first"})
        second = db.insert("prospect_activities", {"details": "second"})
        db.delete("prospect_activities", first["id"])

        third = db.insert("prospect_activities", {"details": "third"})

        assert third["id"] not in (first["id"], second["id"])
        assert db.get_by_id("prospect_activities", second["id"])["details"] == "second"

    def test_insert_rejects_duplicate_id(self):
        db = InMemoryDatabase()
        db.insert("prospects", {"id": "p-1", "name": "A"})

        with pytest.raises(PersistenceError):
            db.insert("prospects", {"id": "p-1", "name": "B"})
        assert db.get_by_id("prospects", "p-1")["name"] == "A"

    def test_delete_where(self):
        db = InMemoryDatabase()
        db.insert("prospects", {"id": "p-1", "owner_id": OWNER})
        assert db.delete_where("prospects", {"id": "p-1", "owner_id": OTHER_OWNER}) == 0
        assert db.delete("prospects", "p-1")
        assert db.count("prospects") == 0


class TestDatabaseConnection:

    def test_conditional_update_builds_filters(self):
        client, query = chain_client(data=[{"id": "p-1", "version": 3}])
        db = DatabaseConnection(client=client)

        row = db.update_where("prospects", {"id": "p-1", "version": 2, "sent_at": None}, {"version": 3})

        assert row == {"id": "p-1", "version": 3}
        client.table.assert_called_with("prospects")
        query.update.assert_called_once_with({"version": 3})
        query.eq.assert_any_call("id", "p-1")
        query.eq.assert_any_call("version", 2)
        query.is_.assert_called_once_with("sent_at", "null")

    def test_no_matching_row_returns_none(self):
        client, _ = chain_client(data=[])
        assert DatabaseConnection(client=client).update_where("prospects", {"id": "x"}, {}) is None

    def test_client_errors_become_persistence_errors(self):
        client, _ = chain_client(error=RuntimeError("connection refused"))
        db = DatabaseConnection(client=client)

        with pytest.raises(PersistenceError):
            db.update_where("prospects", {"id": "p-1"}, {"name": "B"})
        with pytest.raises(PersistenceError):
            db.insert("prospect_activities", {"id": "a-1"})

    def test_upsert_is_not_retried_by_the_adapter(self):
        client, query = chain_client(error=RuntimeError("service unavailable"))

        with pytest.raises(PersistenceError):
            DatabaseConnection(client=client).upsert("prospects", {"id": "p-1"}, ["id"])
        assert query.execute.call_count == 1

    def test_prospect_create_during_outage_writes_at_most_twice(self):
        client = OutageClient()
        machine = OutreachStateMachine(DatabaseConnection(client=client))

        with patch("tenacity.nap.time.sleep"):
            with pytest.raises(PersistenceError):
                machine.create_prospect(OWNER, prospect_data(id="p-1"))

        assert client.calls.count("upsert") == 2

    def test_delete_counts_rows(self):
        client, query = chain_client(data=[{"id": "p-1"}])
        assert DatabaseConnection(client=client).delete_where("prospects", {"id": "p-1"}) == 1
        query.delete.assert_called_once()


class TestProspectRepository:

    def test_reads_are_owner_scoped(self, db):
        repo = ProspectRepository(db)
        prospect = repo.upsert(Prospect(owner_id=OWNER, version=1, **prospect_data()))

        assert repo.get(OWNER, prospect.id) is not None
        assert repo.get(OTHER_OWNER, prospect.id) is None
        assert repo.list(OTHER_OWNER) == []
        assert not repo.delete(OTHER_OWNER, prospect.id)

    def test_update_if_version_bumps_version(self, db):
        repo = ProspectRepository(db)
        prospect = repo.upsert(Prospect(owner_id=OWNER, version=1, **prospect_data()))

        committed = repo.update_if_version(prospect.model_copy(update={"name": "B"}), 1)
        stale = repo.update_if_version(prospect.model_copy(update={"name": "C"}), 1)

        assert committed.version == 2
        assert committed.updated_at >= prospect.updated_at
        assert stale is None
        assert repo.get(OWNER, prospect.id).name == "B"
