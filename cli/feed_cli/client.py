"""HTTP and WebSocket clients for the Livefeed API."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any

import httpx
import websockets

from engine.kernel.filters import FilterState
from engine.kernel.types import Message

logger = logging.getLogger(__name__)

MESSAGES_COLLECTION = "messages"
SOURCES_COLLECTION = "message_sources"

# Subscription id -> collection it fills.
SUBSCRIPTIONS = {
    "messages": MESSAGES_COLLECTION,
    "messageSources": SOURCES_COLLECTION,
}


class HistoryFetchError(Exception):
    """A historical page could not be fetched (transport or HTTP failure)."""


class ApiClient:
    """HTTP client for the historical fetch endpoint."""

    def __init__(self, api_url: str, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 30.0):
        self.api_url = api_url.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.api_url, timeout=timeout, transport=transport)

    @property
    def live_url(self) -> str:
        """WebSocket URL of the live channel."""
        if self.api_url.startswith("https://"):
            base = "wss://" + self.api_url[len("https://") :]
        elif self.api_url.startswith("http://"):
            base = "ws://" + self.api_url[len("http://") :]
        else:
            base = self.api_url
        return f"{base}/ws/messages"

    async def fetch_history(
        self,
        filters: FilterState,
        *,
        limit: int,
        before: datetime | None = None,
        before_id: str | None = None,
    ) -> list[Message]:
        """
        Fetch one page of messages strictly older (or newer, for asc) than `before`.

        Raises HistoryFetchError on transport or HTTP errors. A body that is
        not a JSON list yields an empty page.
        """
        params: dict[str, Any] = {
            **filters.to_query(),
            "limit": str(limit),
            "sortDirection": filters.sort_direction,
        }
        if before is not None:
            params["before"] = before.isoformat()
        if before_id:
            params["beforeId"] = before_id

        try:
            res = await self.client.get("/api/messages", params=params)
            res.raise_for_status()
        except httpx.HTTPError as e:
            raise HistoryFetchError(str(e)) from e

        try:
            data = res.json()
        except ValueError:
            logger.warning("history: response was not JSON")
            return []
        if not isinstance(data, list):
            return []

        messages = []
        for item in data:
            message = Message.from_wire(item) if isinstance(item, dict) else None
            if message is not None:
                messages.append(message)
        return messages

    async def health(self) -> bool:
        try:
            res = await self.client.get("/health")
        except httpx.HTTPError:
            return False
        return res.status_code == 200

    async def aclose(self) -> None:
        await self.client.aclose()


class WebSocketChannel:
    """
    Live subscription channel with a client-side document cache.

    Subscriptions are remembered and re-sent on every connect. While
    disconnected, the cached documents stay readable as a frozen snapshot;
    reconnecting drops them and lets the server repopulate.
    """

    def __init__(self, url: str, connect=websockets.connect):
        self.url = url
        self._connect = connect
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._subs: dict[str, dict[str, Any] | None] = {}
        self._docs: dict[str, dict[str, dict[str, Any]]] = {c: {} for c in SUBSCRIPTIONS.values()}
        self.ready: set[str] = set()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        if self.connected:
            return
        self._ws = await self._connect(self.url)
        for docs in self._docs.values():
            docs.clear()
        self.ready.clear()
        for sub_id, params in self._subs.items():
            await self._send_sub(sub_id, params)
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        logger.info("live: connected to %s", self.url)

    async def disconnect(self) -> None:
        if not self.connected:
            return
        ws, self._ws = self._ws, None
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        await ws.close()
        logger.info("live: disconnected")

    async def subscribe(self, sub_id: str, params: dict[str, Any] | None = None) -> None:
        """Start or re-parameterize a subscription. Sent now if connected, else on connect."""
        if sub_id not in SUBSCRIPTIONS:
            raise ValueError(f"unknown subscription: {sub_id}")
        self._subs[sub_id] = params
        if self.connected:
            await self._send_sub(sub_id, params)

    async def _send_sub(self, sub_id: str, params: dict[str, Any] | None) -> None:
        frame: dict[str, Any] = {"type": "sub", "id": sub_id, "name": sub_id}
        if params is not None:
            frame["params"] = params
        await self._ws.send(json.dumps(frame))

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("live: malformed frame %r", raw[:200])
                    continue
                if isinstance(frame, dict):
                    self.apply(frame)
        except websockets.ConnectionClosed as e:
            logger.warning("live: connection closed: %s", e)
        if self._ws is ws:
            self._ws = None

    def apply(self, frame: dict[str, Any]) -> None:
        """Apply one server frame to the document cache."""
        kind = frame.get("type")
        sub_id = frame.get("sub")

        if kind == "ready":
            self.ready.add(sub_id)
            return
        if kind == "reset":
            collection = SUBSCRIPTIONS.get(sub_id)
            if collection is not None:
                self._docs[collection].clear()
            self.ready.discard(sub_id)
            return
        if kind == "nosub":
            logger.warning("live: subscription %s refused: %s", sub_id, frame.get("error"))
            return

        docs = self._docs.get(frame.get("collection"))
        doc_id = frame.get("id")
        if docs is None or not isinstance(doc_id, str):
            return

        if kind == "added":
            docs[doc_id] = dict(frame.get("fields") or {})
        elif kind == "changed":
            docs.setdefault(doc_id, {}).update(frame.get("fields") or {})
        elif kind == "removed":
            docs.pop(doc_id, None)

    def messages(self) -> list[Message]:
        result = []
        for doc_id, fields in self._docs[MESSAGES_COLLECTION].items():
            message = Message.from_wire({**fields, "id": doc_id})
            if message is not None:
                result.append(message)
        return result

    def sources(self) -> list[str]:
        return sorted(self._docs[SOURCES_COLLECTION])
