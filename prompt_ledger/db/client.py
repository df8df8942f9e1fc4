"""Supabase client initialization and helper methods."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import httpx
import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from prompt_ledger.config import get_settings
from prompt_ledger.core.errors import NotFoundError, StaleEntityError, StorageFailureError

logger = structlog.get_logger()

EVENTS_TABLE = "audit_events"

# Postgres function that applies entity writes and their audit events in one
# transaction, see supabase/migrations/0001_audit_recovery.sql
MUTATION_RPC = "apply_audited_mutations"


def _quote(value: Any) -> str:
    """Quote a value for use inside a PostgREST or= filter."""
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


class SupabaseClient:
    """Wrapper around the Supabase client with convenience methods."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    def _execute(self, query: Any) -> Any:
        """Run a query builder, translating backend failures into domain errors."""
        try:
            return query.execute()
        except APIError as e:
            # PostgREST maps SQLSTATE PTxyz raised by our functions to HTTP xyz
            if e.code == "PT409":
                raise StaleEntityError(e.message or "entity changed concurrently") from e
            if e.code == "PT404":
                raise NotFoundError(e.message or "entity not found") from e
            logger.warning("supabase.api_error", code=e.code, error=e.message)
            raise StorageFailureError(f"storage backend rejected the request: {e.message}") from e
        except httpx.HTTPError as e:
            logger.warning("supabase.transport_error", error=str(e))
            raise StorageFailureError(f"storage backend unavailable: {e}") from e

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return the created row."""
        result = self._execute(self._client.table(table).insert(data))
        return result.data[0]

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select records with optional filters, ordering, and limit.

        A filter value of None matches NULL columns.
        """
        query = self._client.table(table).select("*")

        if filters:
            for key, value in filters.items():
                query = query.is_(key, "null") if value is None else query.eq(key, value)

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        result = self._execute(query)
        return result.data

    def select_not_null(
        self,
        table: str,
        column: str,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Select records whose ``column`` is set, newest value first."""
        query = self._client.table(table).select("*").not_.is_(column, "null")
        for key, value in (filters or {}).items():
            query = query.eq(key, value)
        result = self._execute(query.order(column, desc=True))
        return result.data

    def get(self, table: str, id: str) -> dict[str, Any] | None:
        """Fetch a single record by ID."""
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
        """Keyset page ordered by (created_at, seq) descending.

        ``before`` is a ``(created_at, seq)`` watermark; only rows strictly
        older than it are returned.
        """
        query = self._client.table(table).select("*")
        for key, value in (filters or {}).items():
            query = query.eq(key, value)
        if since:
            query = query.gte("created_at", since)
        if before:
            ts, seq = before
            query = query.or_(
                f"created_at.lt.{_quote(ts)},"
                f"and(created_at.eq.{_quote(ts)},seq.lt.{int(seq)})"
            )
        query = query.order("created_at", desc=True).order("seq", desc=True).limit(limit)
        result = self._execute(query)
        return result.data

    def delete(self, table: str, id: str) -> bool:
        """Delete a record by ID. Returns whether a row was removed."""
        result = self._execute(self._client.table(table).delete().eq("id", id))
        return bool(result.data)

    def apply_mutations(self, ops: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Apply entity writes and their audit events atomically.

        Each op is ``{"table", "op": insert|update|delete, "id", "values",
        "expected", "event"}``. ``expected`` (when set) must equal the current
        row or the whole batch is rejected with StaleEntityError. Returns one
        ``{"entity": row | None, "event": event_row}`` per op.
        """
        result = self._execute(self._client.rpc(MUTATION_RPC, {"p_ops": ops}))
        return result.data


@lru_cache
def get_supabase_client() -> SupabaseClient:
    """Get cached Supabase client instance."""
    settings = get_settings()
    client = create_client(settings.supabase_url, settings.supabase_key)
    logger.info("supabase.connected", url=settings.supabase_url)
    return SupabaseClient(client)
