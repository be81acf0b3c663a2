"""
RemoteStore interface for the network-backed persistence service.

The core only needs a narrow request/response contract: insert, update,
select, upsert, and a non-blocking subscription for push notifications.
Every call is async and fails with a RemoteStoreError whose ``transient``
flag tells the action queue whether a retry can help.

Two included implementations:
1. InMemoryRemoteStore - dict-of-lists tables with failure injection (testing)
2. SupabaseRemoteStore - Supabase (PostgREST + Realtime) production backend

Usage pattern:
    remote = InMemoryRemoteStore()  # or SupabaseRemoteStore(url, key)
    await remote.initialize()
    row = await remote.insert_row("telemetry", {"event_type": "tick"})
    await remote.close()
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set
from uuid import uuid4

from .errors import PermanentRemoteError, RemoteStoreError, TransientRemoteError
from .logging_utils import log_error

try:  # Optional dependency (only needed for SupabaseRemoteStore)
    import httpx
    from postgrest.exceptions import APIError
    from supabase import acreate_client
except ImportError:  # pragma: no cover - supabase may not be installed for in-memory usage
    httpx = None
    APIError = None
    acreate_client = None


Row = Dict[str, Any]
ChangeCallback = Callable[[Dict[str, Any]], Any]


class Subscription:
    """Handle returned by ``RemoteStore.subscribe``; call ``unsubscribe`` to stop."""

    def __init__(self, table: str, remover: Callable[[], Awaitable[None]]):
        self.table = table
        self._remover = remover
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        await self._remover()


class RemoteStore(ABC):
    """Abstract base class for the remote persistence and pub/sub service.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Writes: insert_row(), update_row(), upsert_row()
    3. Reads: select_rows()
    4. Push: subscribe()

    Failure contract:
    - TransientRemoteError: network error, 5xx, timeout (retry-eligible)
    - PermanentRemoteError: validation, constraint, or auth error (drop)
    """

    async def initialize(self) -> None:
        """Open connections. Default is a no-op."""

    async def close(self) -> None:
        """Release connections. Default is a no-op."""

    @abstractmethod
    async def insert_row(self, table: str, values: Row) -> Row:
        """Insert one row and return it as stored."""

    @abstractmethod
    async def update_row(self, table: str, key: Row, patch: Row) -> Row:
        """Apply ``patch`` to the row matching ``key`` (column equality).

        Raises:
            PermanentRemoteError: If no row matches ``key``
        """

    @abstractmethod
    async def select_rows(
        self,
        table: str,
        filters: Optional[Row] = None,
        *,
        greater_than: Optional[Row] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Return rows matching all equality ``filters`` and ``greater_than`` bounds."""

    @abstractmethod
    async def upsert_row(self, table: str, values: Row, conflict_key: Sequence[str]) -> Row:
        """Insert, or replace the row whose ``conflict_key`` columns match."""

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        filters: Optional[Row] = None,
    ) -> Subscription:
        """Register ``callback`` for row changes on ``table``. Must not block."""


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _matches(row: Row, filters: Optional[Row], greater_than: Optional[Row]) -> bool:
    for column, expected in (filters or {}).items():
        if row.get(column) != expected:
            return False
    for column, bound in (greater_than or {}).items():
        value = row.get(column)
        if value is None or not _comparable(value) > _comparable(bound):
            return False
    return True


class InMemoryRemoteStore(RemoteStore):
    """In-process RemoteStore for tests and offline prototyping.

    Storage structure:
    - tables: Dict[table_name, List[Row]] in insertion order

    Failure injection:
    - ``online = False`` makes every call raise TransientRemoteError
    - ``fail_tables[table] = error`` makes every write to ``table`` raise ``error``
    - ``calls`` records (operation, table) pairs for assertions
    """

    def __init__(self):
        self.tables: Dict[str, List[Row]] = {}
        self.online = True
        self.fail_tables: Dict[str, RemoteStoreError] = {}
        self.calls: List[tuple[str, str]] = []
        self._subscribers: Dict[str, List[tuple[str, ChangeCallback, Optional[Row]]]] = {}
        self._callback_tasks: Set[asyncio.Task] = set()

    def _check(self, operation: str, table: str, *, write: bool) -> None:
        self.calls.append((operation, table))
        if not self.online:
            raise TransientRemoteError("remote store unreachable")
        if write and table in self.fail_tables:
            raise self.fail_tables[table]

    async def insert_row(self, table: str, values: Row) -> Row:
        self._check("insert", table, write=True)
        row = dict(values)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self.tables.setdefault(table, []).append(row)
        self._notify(table, "INSERT", row)
        return dict(row)

    async def update_row(self, table: str, key: Row, patch: Row) -> Row:
        self._check("update", table, write=True)
        for row in self.tables.get(table, []):
            if _matches(row, key, None):
                row.update(patch)
                row["updated_at"] = datetime.now(timezone.utc).isoformat()
                self._notify(table, "UPDATE", row)
                return dict(row)
        raise PermanentRemoteError(f"No row in {table} matches {key}", code="PGRST116")

    async def select_rows(
        self,
        table: str,
        filters: Optional[Row] = None,
        *,
        greater_than: Optional[Row] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        self._check("select", table, write=False)
        rows = [dict(row) for row in self.tables.get(table, []) if _matches(row, filters, greater_than)]
        if order is not None:
            rows.sort(key=lambda row: _comparable(row.get(order)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def upsert_row(self, table: str, values: Row, conflict_key: Sequence[str]) -> Row:
        self._check("upsert", table, write=True)
        key = {column: values.get(column) for column in conflict_key}
        for row in self.tables.get(table, []):
            if _matches(row, key, None):
                row.update(values)
                row["updated_at"] = datetime.now(timezone.utc).isoformat()
                self._notify(table, "UPDATE", row)
                return dict(row)
        row = dict(values)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self.tables.setdefault(table, []).append(row)
        self._notify(table, "INSERT", row)
        return dict(row)

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        filters: Optional[Row] = None,
    ) -> Subscription:
        token = str(uuid4())
        self._subscribers.setdefault(table, []).append((token, callback, filters))

        async def _remove() -> None:
            self._subscribers[table] = [
                entry for entry in self._subscribers.get(table, []) if entry[0] != token
            ]

        return Subscription(table, _remove)

    def _notify(self, table: str, event: str, row: Row) -> None:
        payload = {"event": event, "table": table, "new": dict(row)}
        for _, callback, filters in list(self._subscribers.get(table, [])):
            if not _matches(row, filters, None):
                continue
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._callback_tasks.add(task)
                    task.add_done_callback(partial(self._callback_done, table))
            except Exception as exc:
                log_error(f"Subscriber callback for {table} failed: {exc}")

    def _callback_done(self, table: str, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_error(f"Subscriber callback for {table} failed: {exc}")


# Postgres SQLSTATE classes worth retrying: connection, transaction rollback,
# insufficient resources, operator intervention.
_TRANSIENT_SQLSTATE_PREFIXES = ("08", "40", "53", "57")


def _classify_api_error(exc: Exception) -> RemoteStoreError:
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    if code and str(code).startswith(_TRANSIENT_SQLSTATE_PREFIXES):
        return TransientRemoteError(message, code=str(code))
    return PermanentRemoteError(message, code=str(code) if code else None)


class SupabaseRemoteStore(RemoteStore):
    """Supabase-backed RemoteStore (PostgREST for rows, Realtime for push).

    PostgREST API errors (constraint violations, RLS/auth failures, bad
    columns) are permanent unless their SQLSTATE class is transient.
    Transport errors and timeouts are transient.
    """

    def __init__(self, url: str, key: str, *, schema: str = "public"):
        self.url = url
        self.key = key
        self.schema = schema
        self.client = None

    async def initialize(self) -> None:
        if acreate_client is None:
            raise RuntimeError(
                "SupabaseRemoteStore requires the supabase package. "
                "Install with: pip install 'cleanspace[supabase]'"
            )
        if self.client is None:
            self.client = await acreate_client(self.url, self.key)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.remove_all_channels()
            self.client = None

    def _table(self, table: str):
        assert self.client is not None, "RemoteStore not initialized"
        return self.client.table(table)

    async def _execute(self, builder) -> List[Row]:
        try:
            response = await builder.execute()
        except APIError as exc:
            raise _classify_api_error(exc) from exc
        except (httpx.HTTPError, OSError, asyncio.TimeoutError) as exc:
            raise TransientRemoteError(f"Supabase request failed: {exc}") from exc
        return list(response.data or [])

    @staticmethod
    def _first(rows: List[Row], table: str) -> Row:
        if not rows:
            raise PermanentRemoteError(f"Supabase returned no row for {table}", code="PGRST116")
        return rows[0]

    async def insert_row(self, table: str, values: Row) -> Row:
        rows = await self._execute(self._table(table).insert(values))
        return self._first(rows, table)

    async def update_row(self, table: str, key: Row, patch: Row) -> Row:
        query = self._table(table).update(patch)
        for column, value in key.items():
            query = query.eq(column, value)
        rows = await self._execute(query)
        return self._first(rows, table)

    async def select_rows(
        self,
        table: str,
        filters: Optional[Row] = None,
        *,
        greater_than: Optional[Row] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        query = self._table(table).select("*")
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        for column, bound in (greater_than or {}).items():
            query = query.gt(column, bound.isoformat() if isinstance(bound, datetime) else bound)
        if order is not None:
            query = query.order(order, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return await self._execute(query)

    async def upsert_row(self, table: str, values: Row, conflict_key: Sequence[str]) -> Row:
        query = self._table(table).upsert(values, on_conflict=",".join(conflict_key))
        rows = await self._execute(query)
        return self._first(rows, table)

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        filters: Optional[Row] = None,
    ) -> Subscription:
        assert self.client is not None, "RemoteStore not initialized"
        # Realtime accepts a single column filter per listener
        filter_expr = None
        if filters:
            column, value = next(iter(filters.items()))
            filter_expr = f"{column}=eq.{value}"

        channel = self.client.channel(f"{table}:{uuid4().hex[:8]}")
        channel.on_postgres_changes(
            "*",
            callback=callback,
            table=table,
            schema=self.schema,
            filter=filter_expr,
        )
        await channel.subscribe()

        async def _remove() -> None:
            await self.client.remove_channel(channel)

        return Subscription(table, _remove)
