"""
WebSocket endpoint for live message subscriptions.

Accepts connections at /ws/messages. A client may hold several named
subscriptions on one socket, each backed by its own publication instance.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from backend.models.message import MessageQuery
from backend.services.publication import MessagesPublication, SourcesPublication
from backend.store import get_store
from engine.kernel.store import MessageStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

PUBLICATIONS = {"messages", "messageSources"}


class SubscriptionSession:
    """
    The subscriptions of one WebSocket connection.

    Each subscription is a task pumping its publication's deltas to the
    socket. Stopping a subscription cancels the task, which closes the
    publication and releases its store observer before stop() returns.
    """

    def __init__(self, websocket: WebSocket, store: MessageStore) -> None:
        self.websocket = websocket
        self.store = store
        self._tasks: dict[str, asyncio.Task] = {}
        self._send_lock = asyncio.Lock()

    async def send(self, payload: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_text(json.dumps(payload))

    async def start(self, sub_id: str, name: str, params: Any) -> None:
        if sub_id in self._tasks:
            await self.stop(sub_id)
            await self.send({"type": "reset", "sub": sub_id})

        if name == "messages":
            publication = MessagesPublication(self.store, MessageQuery.from_raw(params))
        elif name == "messageSources":
            publication = SourcesPublication(self.store)
        else:
            logger.warning("ws: unknown publication %r", name)
            await self.send({"type": "nosub", "sub": sub_id, "error": "unknown_publication"})
            return

        self._tasks[sub_id] = asyncio.create_task(self._pump(sub_id, publication))
        logger.info("ws: subscribed sub=%s name=%s", sub_id, name)

    async def stop(self, sub_id: str) -> None:
        task = self._tasks.pop(sub_id, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("ws: unsubscribed sub=%s", sub_id)

    async def stop_all(self) -> None:
        for sub_id in list(self._tasks):
            await self.stop(sub_id)

    async def _pump(self, sub_id: str, publication: MessagesPublication | SourcesPublication) -> None:
        deltas = publication.run()
        try:
            async for delta in deltas:
                await self.send(delta.to_payload(sub_id))
        except asyncio.CancelledError:
            raise
        except WebSocketDisconnect:
            logger.debug("ws: socket closed while sending sub=%s", sub_id)
        except Exception:
            logger.exception("ws: publication failed sub=%s", sub_id)
            try:
                await self.send({"type": "nosub", "sub": sub_id, "error": "internal_error"})
            except (WebSocketDisconnect, RuntimeError):
                pass
        finally:
            await deltas.aclose()


@router.websocket("/ws/messages")
async def messages_websocket(websocket: WebSocket, store: MessageStore = Depends(get_store)) -> None:
    """
    Stream live subscription deltas to the client.

    Protocol:
      Client → Server:  {"type": "sub", "id": "<sub id>", "name": "messages", "params": {...}}
                        {"type": "sub", "id": "<sub id>", "name": "messageSources"}
                        {"type": "unsub", "id": "<sub id>"}
      Server → Client:  {"type": "added", "sub", "collection", "id", "fields", "before"}
                        {"type": "changed", "sub", "collection", "id", "fields"}
                        {"type": "removed", "sub", "collection", "id"}
                        {"type": "ready", "sub"}
                        {"type": "reset", "sub"}      (re-subscribe with same id)
                        {"type": "nosub", "sub", "error"}

    "messages" params: limit, sortDirection, and optionally the filter fields
    (types, source, search, startDate, endDate). All subscriptions stop when
    the socket closes.
    """
    await websocket.accept()
    logger.info("WebSocket accepted: /ws/messages")

    session = SubscriptionSession(websocket, store)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            raw = frame.get("text")
            if raw is None:
                logger.warning("ws: ignoring binary frame from client")
                continue
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("ws: malformed message from client: %r", raw[:200])
                continue
            if not isinstance(msg, dict):
                continue

            msg_type = msg.get("type")
            sub_id = msg.get("id")
            if not isinstance(sub_id, str) or not sub_id:
                logger.warning("ws: %s without subscription id", msg_type)
                continue

            if msg_type == "sub":
                await session.start(sub_id, str(msg.get("name", "")), msg.get("params"))
            elif msg_type == "unsub":
                await session.stop(sub_id)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: /ws/messages")
    finally:
        await session.stop_all()
