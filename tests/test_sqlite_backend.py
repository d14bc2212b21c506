"""
Tests for the SQLite backend: todo persistence, changelog ordering and the
database-held version counter.
"""

import os
import sqlite3
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from todosync.backend import build_backend, get_backend, sqlite_backend
from todosync.changelog import InMemoryVersionSequencer
from todosync.db import SQLiteDatabase, SQLiteVersionSequencer
from todosync.errors import StorageError
from todosync.main import app
from todosync.schemas import TodoCreate, TodoUpdate
from todosync.settings import get_settings


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "data" / "todos.db")


@pytest.fixture
def backend(db_path):
    return sqlite_backend(db_path)


class TestSQLiteTodoRepository:
    def test_create_get_roundtrip(self, backend):
        created = backend.todos.create(
            TodoCreate(
                title="Pay bills",
                description="Electricity",
                due_date="2099-12-25",
                tags=["home"],
                dependencies=["b" * 32],
                image="img://1",
            )
        )
        fetched = backend.todos.get(created["id"])
        assert fetched == created
        assert fetched["due_date"] == datetime(2099, 12, 25)
        assert fetched["priority"] == "medium"
        assert fetched["dependencies"] == ["b" * 32]

    def test_update_only_mutable_fields(self, backend):
        created = backend.todos.create(TodoCreate(title="A", description="x", priority="low"))
        updated = backend.todos.update(created["id"], TodoUpdate(completed=True))
        assert updated["completed"] is True
        assert updated["title"] == "A"
        assert updated["description"] == "x"
        assert updated["priority"] == "low"
        assert backend.todos.update("c" * 32, TodoUpdate(title="B")) is None

    def test_delete_returns_removed(self, backend):
        created = backend.todos.create(TodoCreate(title="A"))
        removed = backend.todos.delete(created["id"])
        assert removed["id"] == created["id"]
        assert backend.todos.get(created["id"]) is None
        assert backend.todos.delete(created["id"]) is None

    def test_list_filter_and_order(self, backend):
        a = backend.todos.create(TodoCreate(title="A"))
        b = backend.todos.create(TodoCreate(title="B"))
        c = backend.todos.create(TodoCreate(title="C"))
        assert [t["id"] for t in backend.todos.list()] == [c["id"], b["id"], a["id"]]
        assert [t["id"] for t in backend.todos.list([a["id"], c["id"]])] == [c["id"], a["id"]]
        assert backend.todos.list([]) == []


class TestSQLiteChangelog:
    def test_versions_survive_reopen(self, backend, db_path):
        todo = backend.todos.create(TodoCreate(title="A"))
        backend.coordinator.record_create(todo)
        backend.coordinator.record_update(todo)

        reopened = sqlite_backend(db_path)
        entry = reopened.coordinator.record_delete(todo)
        assert entry["version"] == 2
        assert [e["version"] for e in reopened.coordinator.changes_since()] == [0, 1, 2]

    def test_counter_seeded_from_existing_changelog(self, backend, db_path):
        backend.changelog.append(
            {
                "resource_id": "a" * 32,
                "resource_type": "todo",
                "version": 4,
                "is_deleted": False,
                "created_at": datetime.now(),
            }
        )
        assert SQLiteVersionSequencer(SQLiteDatabase(db_path)).next_version() == 5

    def test_duplicate_version_is_storage_error(self, backend):
        entry = {
            "resource_id": "a" * 32,
            "resource_type": "todo",
            "version": 0,
            "is_deleted": False,
            "created_at": datetime.now(),
        }
        backend.changelog.append(entry)
        with pytest.raises(StorageError):
            backend.changelog.append(entry)

    def test_find_since_ascending(self, backend):
        for i in range(5):
            backend.coordinator.record_create(backend.todos.create(TodoCreate(title=f"T{i}")))
        assert [e["version"] for e in backend.changelog.find_since(2)] == [3, 4]
        assert backend.changelog.latest()["version"] == 4

    def test_concurrent_allocation_is_unique(self, backend):
        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(lambda _: backend.sequencer.next_version(), range(100)))
        assert sorted(values) == list(range(100))

    def test_failed_insert_rolls_back_allocation(self, backend):
        def bad_entry(version):
            return {
                "resource_id": None,  # violates NOT NULL
                "resource_type": "todo",
                "version": version,
                "is_deleted": False,
                "created_at": datetime.now(),
            }

        with pytest.raises(StorageError):
            backend.changelog.append_next(backend.sequencer, bad_entry)
        assert backend.sequencer.next_version() == 0

    def test_append_next_needs_sqlite_sequencer(self, backend):
        with pytest.raises(TypeError):
            backend.changelog.append_next(InMemoryVersionSequencer(backend.changelog), lambda v: {})

    def test_polling_during_concurrent_records_sees_every_version(self, backend):
        todo = backend.todos.create(TodoCreate(title="Busy"))
        done = threading.Event()
        seen = []

        def poll():
            watermark = -1
            while True:
                finished = done.is_set()
                for e in backend.coordinator.changes_since(watermark):
                    seen.append(e["version"])
                    watermark = e["version"]
                if finished:
                    return
                time.sleep(0.005)

        poller = threading.Thread(target=poll)
        poller.start()
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: backend.coordinator.record_update(todo), range(60)))
        done.set()
        poller.join(10)
        assert seen == list(range(60))

    def test_unreachable_database_is_storage_error(self, backend, db_path):
        os.remove(db_path)
        os.makedirs(db_path)  # a directory where the file used to be
        with pytest.raises(StorageError):
            backend.changelog.latest()


class TestSQLiteWiring:
    def test_build_backend_from_env(self, monkeypatch, db_path):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "sqlite")
        monkeypatch.setenv("SQLITE_DB_PATH", db_path)
        b = build_backend(get_settings())
        assert b.name == "sqlite"
        assert os.path.exists(db_path)
        with sqlite3.connect(db_path) as conn:
            tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"todos", "changelog", "sequences"} <= tables

    def test_http_flow_over_sqlite(self, backend):
        app.dependency_overrides[get_backend] = lambda: backend
        try:
            client = TestClient(app)
            created = client.post("/api/v1/todos/", json=[{"title": "A"}, {"title": "B"}]).json()
            client.delete(f"/api/v1/todos/{created[0]['id']}")
            entries = client.get("/api/v1/todos/changelist?lastSyncedVersion=0").json()
            assert [(e["version"], e["is_deleted"]) for e in entries] == [(1, False), (2, True)]
            assert client.get("/").json()["backend"] == "sqlite"
        finally:
            app.dependency_overrides.pop(get_backend, None)

    def test_storage_failure_maps_to_503(self, backend, db_path):
        app.dependency_overrides[get_backend] = lambda: backend
        try:
            os.remove(db_path)
            os.makedirs(db_path)
            res = TestClient(app).get("/api/v1/todos/")
            assert res.status_code == 503
            assert res.json()["error"] == "StorageError"
        finally:
            app.dependency_overrides.pop(get_backend, None)

    def test_out_of_range_watermark_is_client_error(self, backend):
        app.dependency_overrides[get_backend] = lambda: backend
        try:
            res = TestClient(app).get("/api/v1/todos/changelist?lastSyncedVersion=99999999999999999999")
            assert res.status_code == 400
            assert res.json()["error"] == "ValidationError"
        finally:
            app.dependency_overrides.pop(get_backend, None)
