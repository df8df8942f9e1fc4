"""Test fixtures: in-memory Supabase client and shared builders."""

from __future__ import annotations

import copy
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from prompt_ledger.core.audit import AuditLog
from prompt_ledger.core.entities import EntityRegistry
from prompt_ledger.core.errors import NotFoundError, StaleEntityError, StorageFailureError
from prompt_ledger.core.pagination import CursorCodec
from prompt_ledger.core.restore import RestoreOrchestrator
from prompt_ledger.db.client import EVENTS_TABLE, SupabaseClient

CURSOR_SECRET = "test-cursor-secret"


def _sort_key(value: Any) -> tuple[bool, Any]:
    return (value is None, value)


class MockSupabaseClient(SupabaseClient):
    """In-memory mock of the Supabase client for testing.

    ``apply_mutations`` stages every op on a copy of the tables and swaps it
    in only if all of them succeed, like the Postgres function does.
    """

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = {
            "projects": [],
            "prompts": [],
            "snippets": [],
            "snippet_collections": [],
            "conversations": [],
            EVENTS_TABLE: [],
        }
        self._seq = 0
        # Failure injection
        self.fail_event_writes = False
        self.before_commit: Callable[[], None] | None = None
        self.commit_calls = 0

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        record = copy.deepcopy(data)
        if table == EVENTS_TABLE:
            if self.fail_event_writes:
                raise StorageFailureError("injected event write failure")
            record["seq"] = self._next_seq()
        self._tables.setdefault(table, []).append(record)
        return copy.deepcopy(record)

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._tables.get(table, [])
        if filters:
            for key, value in filters.items():
                rows = [r for r in rows if r.get(key) == value]
        if order_by:
            rows = sorted(rows, key=lambda r: _sort_key(r.get(order_by)), reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def select_not_null(
        self,
        table: str,
        column: str,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        rows = [r for r in self.select(table, filters=filters) if r.get(column) is not None]
        return sorted(rows, key=lambda r: r[column], reverse=True)

    def get(self, table: str, id: str) -> dict[str, Any] | None:
        rows = self.select(table, filters={"id": id}, limit=1)
        return rows[0] if rows else None

    def select_page(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        since: str | None = None,
        before: tuple[str, int] | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        rows = self.select(table, filters=filters)
        if since:
            rows = [r for r in rows if r["created_at"] >= since]
        if before:
            ts, seq = before
            rows = [
                r
                for r in rows
                if r["created_at"] < ts or (r["created_at"] == ts and r["seq"] < seq)
            ]
        rows.sort(key=lambda r: (r["created_at"], r["seq"]), reverse=True)
        return rows[:limit]

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        for row in self._tables.get(table, []):
            if row["id"] == id:
                row.update(copy.deepcopy(data))
                return copy.deepcopy(row)
        raise NotFoundError(f"Row {id} not found in {table}")

    def delete(self, table: str, id: str) -> bool:
        rows = self._tables.get(table, [])
        kept = [r for r in rows if r["id"] != id]
        self._tables[table] = kept
        return len(kept) != len(rows)

    def apply_mutations(self, ops: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self.commit_calls += 1
        if self.before_commit is not None:
            hook, self.before_commit = self.before_commit, None
            hook()

        staged = copy.deepcopy(self._tables)
        seq = self._seq
        results = []
        for op in ops:
            table = staged[op["table"]]
            current = next((r for r in table if r["id"] == op["id"]), None)
            if op["op"] == "insert":
                if current is not None:
                    raise StaleEntityError(f"{op['id']} already exists")
                entity = copy.deepcopy(op["values"])
                table.append(entity)
            else:
                if current is None:
                    raise NotFoundError(f"{op['id']} not found in {op['table']}")
                if op["expected"] is not None and current != op["expected"]:
                    raise StaleEntityError(f"{op['id']} changed concurrently")
                if op["op"] == "update":
                    current.update(copy.deepcopy(op["values"]))
                    entity = current
                else:
                    table.remove(current)
                    entity = None

            if self.fail_event_writes:
                raise StorageFailureError("injected event write failure")
            seq += 1
            event = {**copy.deepcopy(op["event"]), "seq": seq}
            staged[EVENTS_TABLE].append(event)
            results.append({"entity": copy.deepcopy(entity), "event": copy.deepcopy(event)})

        self._tables = staged
        self._seq = seq
        return results

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Raw table contents, for assertions."""
        return copy.deepcopy(self._tables.get(table, []))

    def reset(self):
        for table in self._tables:
            self._tables[table] = []
        self._seq = 0


@pytest.fixture
def mock_db() -> MockSupabaseClient:
    """Fresh mock database for each test."""
    return MockSupabaseClient()


@pytest.fixture
def audit(mock_db) -> AuditLog:
    return AuditLog(mock_db, CursorCodec(CURSOR_SECRET), default_page_size=20, max_page_size=100)


@pytest.fixture
def registry(mock_db, audit) -> EntityRegistry:
    return EntityRegistry(mock_db, audit, max_tree_depth=8)


@pytest.fixture
def restorer(audit, registry) -> RestoreOrchestrator:
    return RestoreOrchestrator(audit, registry)


@pytest.fixture
def project(registry) -> dict[str, Any]:
    """An active project to hang prompts off."""
    return registry.projects.create({"name": "Launch plan"})


@pytest.fixture
def app(mock_db, audit, registry, restorer):
    """FastAPI test app with mocked dependencies."""
    from prompt_ledger.core.audit import get_audit_log
    from prompt_ledger.core.entities import get_entity_registry
    from prompt_ledger.core.restore import get_restorer
    from prompt_ledger.db.client import get_supabase_client
    from prompt_ledger.main import app as _app

    _app.dependency_overrides[get_supabase_client] = lambda: mock_db
    _app.dependency_overrides[get_audit_log] = lambda: audit
    _app.dependency_overrides[get_entity_registry] = lambda: registry
    _app.dependency_overrides[get_restorer] = lambda: restorer

    yield _app

    _app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client."""
    return TestClient(app)
