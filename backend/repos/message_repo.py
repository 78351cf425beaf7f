"""Repository for message storage and change observation (Postgres)."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import uuid
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from typing import Any

import asyncpg

from backend.db import listener_conn, system_conn
from engine.kernel.predicate import MATCH_ALL, Predicate, SortSpec
from engine.kernel.store import ChangeHandler, Observer, dispatch
from engine.kernel.types import Change, Message

logger = logging.getLogger(__name__)

# Channel the messages trigger notifies on (see alembic 001_create_messages)
CHANGE_CHANNEL = "message_changes"

_COLUMNS = "id, type, source, text, created_at"


def _row_to_message(row: asyncpg.Record) -> Message:
    """Convert a database row to a Message."""
    return Message(
        id=row["id"],
        type=row["type"],
        source=row["source"],
        text=row["text"],
        created_at=row["created_at"],
    )


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def where_clause(predicate: Predicate) -> tuple[str, list[Any]]:
    """
    Render a Predicate as a SQL WHERE clause with positional arguments.

    Returns ("", []) for the empty predicate.
    """
    clauses: list[str] = []
    args: list[Any] = []

    def arg(value: Any) -> str:
        args.append(value)
        return f"${len(args)}"

    if predicate.types is not None:
        clauses.append(f"type = ANY({arg(sorted(predicate.types))}::text[])")
    if predicate.source is not None:
        clauses.append(f"source = {arg(predicate.source)}")
    if predicate.created_gte is not None:
        clauses.append(f"created_at >= {arg(predicate.created_gte)}")
    if predicate.created_lte is not None:
        clauses.append(f"created_at <= {arg(predicate.created_lte)}")
    if predicate.cursor is not None:
        cursor = predicate.cursor
        op = "<" if cursor.direction == "desc" else ">"
        if cursor.id is not None and _is_uuid(cursor.id):
            clauses.append(f"(created_at, id) {op} ({arg(cursor.created_at)}, {arg(cursor.id)}::uuid)")
        else:
            clauses.append(f"created_at {op} {arg(cursor.created_at)}")
    if predicate.search is not None:
        # Escaped for ARE: a backslash before a non-alphanumeric is a literal
        clauses.append(f"text ~* {arg(re.escape(predicate.search))}")

    if not clauses:
        return "", args
    return "WHERE " + " AND ".join(clauses), args


def order_clause(sort: SortSpec) -> str:
    direction = "DESC" if sort.descending else "ASC"
    if sort.tiebreak:
        return f"ORDER BY created_at {direction}, id {direction}"
    return f"ORDER BY created_at {direction}"


class MessageRepo:
    """
    All message-related database operations.

    Change observation shares a single LISTEN connection across every
    registered observer. It is acquired with the first observer and released
    with the last.
    """

    def __init__(self) -> None:
        self._observers: set[Observer] = set()
        self._listen_lock = asyncio.Lock()
        self._listen_stack: AsyncExitStack | None = None
        self._pump: asyncio.Task | None = None

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def insert(
        self,
        type: str,
        source: str,
        text: str,
        created_at: datetime | None = None,
    ) -> Message:
        """
        Insert a message. The database assigns created_at unless one is given.

        Returns:
            The stored Message
        """
        async with system_conn() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO messages (id, type, source, text, created_at)
                VALUES ($1, $2, $3, $4, COALESCE($5, now()))
                RETURNING {_COLUMNS}
                """,
                str(uuid.uuid4()),
                type,
                source,
                text,
                created_at,
            )
            return _row_to_message(row)

    async def get(self, message_id: str) -> Message | None:
        async with system_conn() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM messages WHERE id = $1", message_id)
            return _row_to_message(row) if row else None

    async def find(
        self,
        predicate: Predicate = MATCH_ALL,
        sort: SortSpec = SortSpec(),
        limit: int | None = None,
    ) -> list[Message]:
        """
        Query messages matching a predicate.

        Args:
            predicate: Compiled filter (see engine.kernel.predicate)
            sort: createdAt direction, optionally with identity tiebreaker
            limit: Maximum rows, or None for all

        Returns:
            Messages in sort order
        """
        where, args = where_clause(predicate)
        query = f"SELECT {_COLUMNS} FROM messages {where} {order_clause(sort)}"
        if limit is not None:
            args.append(limit)
            query += f" LIMIT ${len(args)}"

        async with system_conn() as conn:
            # S608: where/order clauses are built from fixed fragments, values are bound
            rows = await conn.fetch(query, *args)
            return [_row_to_message(row) for row in rows]

    async def distinct_sources(self) -> list[str]:
        """Every source value, ordered by its earliest message."""
        async with system_conn() as conn:
            rows = await conn.fetch("SELECT source FROM messages GROUP BY source ORDER BY min(created_at), source")
            return [row["source"] for row in rows]

    @asynccontextmanager
    async def observe(
        self,
        predicate: Predicate,
        handler: ChangeHandler,
        *,
        initial: bool = False,
    ) -> AsyncIterator[Observer]:
        """
        Observe changes to messages matching `predicate`.

        With `initial=True` every currently matching message is delivered as
        "added" (oldest first) before live changes.

        Usage:
            async with repo.observe(predicate, handler):
                ...
        """
        observer = Observer(predicate, handler, buffering=initial)
        async with self._listen_lock:
            if self._listen_stack is None:
                await self._start_listening()
            self._observers.add(observer)
        try:
            if initial:
                observer.replay(await self.find(predicate, SortSpec("asc", tiebreak=True)))
            yield observer
        finally:
            self._observers.discard(observer)
            async with self._listen_lock:
                if not self._observers and self._listen_stack is not None:
                    await self._stop_listening()

    async def close(self) -> None:
        async with self._listen_lock:
            self._observers.clear()
            if self._listen_stack is not None:
                await self._stop_listening()

    async def _start_listening(self) -> None:
        stack = AsyncExitStack()
        try:
            conn = await stack.enter_async_context(listener_conn())
            queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()

            def _on_notify(connection: asyncpg.Connection, pid: int, channel: str, payload: str) -> None:
                try:
                    data = json.loads(payload)
                    queue.put_nowait((data["op"], str(data["id"])))
                except (ValueError, KeyError, TypeError):
                    logger.warning("message_repo: malformed notification %r", payload[:200])

            await conn.add_listener(CHANGE_CHANNEL, _on_notify)
            stack.push_async_callback(conn.remove_listener, CHANGE_CHANNEL, _on_notify)
        except BaseException:
            await stack.aclose()
            raise

        self._listen_stack = stack
        self._pump = asyncio.create_task(self._pump_changes(queue))
        logger.info("message_repo: listening on %s", CHANGE_CHANNEL)

    async def _stop_listening(self) -> None:
        pump, self._pump = self._pump, None
        stack, self._listen_stack = self._listen_stack, None
        if pump is not None:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
        if stack is not None:
            await stack.aclose()
        logger.info("message_repo: stopped listening on %s", CHANGE_CHANNEL)

    async def _pump_changes(self, queue: asyncio.Queue[tuple[str, str]]) -> None:
        """Resolve notifications to Changes, one at a time, in arrival order."""
        while True:
            op, message_id = await queue.get()
            try:
                if op == "removed":
                    dispatch(self._observers, Change.removed(message_id))
                    continue
                message = await self.get(message_id)
                if message is None:
                    continue
                if op == "added":
                    dispatch(self._observers, Change.added(message))
                elif op == "changed":
                    dispatch(self._observers, Change.changed(message))
            except Exception:
                logger.exception("message_repo: failed to resolve %s %s", op, message_id)
