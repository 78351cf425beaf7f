"""
Live/paused mode controller.

Live: the channel is connected and the window is whatever the "messages"
publication pushes; "load more" grows the subscription limit by one page.

Paused: the channel is disconnected, so the last pushed window stays put as
a frozen snapshot. "Load more" fetches older pages over HTTP into a scratch
cache, and the view is the snapshot merged with the cache. Resuming drops
the cache and reconnects.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal, Protocol

from engine.kernel.filters import DEFAULT_FILTERS, FilterState
from engine.kernel.merge import Pager, ScratchCache, merge_views
from engine.kernel.predicate import compile_filters
from engine.kernel.types import Message

from feed_cli.client import HistoryFetchError

logger = logging.getLogger(__name__)

LOAD_MORE_COOLDOWN_SECONDS = 0.25


class LiveChannel(Protocol):
    @property
    def connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def subscribe(self, sub_id: str, params: dict[str, Any] | None = None) -> None: ...

    def messages(self) -> list[Message]: ...

    def sources(self) -> list[str]: ...


class HistorySource(Protocol):
    async def fetch_history(
        self,
        filters: FilterState,
        *,
        limit: int,
        before: datetime | None = None,
        before_id: str | None = None,
    ) -> list[Message]: ...


class ModeController:
    def __init__(
        self,
        channel: LiveChannel,
        history: HistorySource,
        filters: FilterState = DEFAULT_FILTERS,
        *,
        paused: bool = False,
        cooldown_seconds: float = LOAD_MORE_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.history = history
        self.filters = filters
        self.paused = paused
        self.scratch = ScratchCache()
        self.pager = Pager(filters.page_size)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._loading = False
        self._next_load_at = 0.0

    @property
    def mode(self) -> Literal["live", "paused"]:
        return "paused" if self.paused else "live"

    @property
    def loading(self) -> bool:
        return self._loading

    def publication_params(self) -> dict[str, Any]:
        """
        Parameters for the "messages" subscription.

        While paused only the limit and direction are sent; the local
        predicate does all narrowing over the frozen snapshot.
        """
        params: dict[str, Any] = {}
        if not self.paused:
            params.update(self.filters.to_query())
        params["limit"] = self.pager.limit
        params["sortDirection"] = self.filters.sort_direction
        return params

    async def start(self) -> None:
        """Register subscriptions and connect unless restored as paused."""
        await self.channel.subscribe("messageSources")
        await self.channel.subscribe("messages", self.publication_params())
        if not self.paused:
            await self.channel.connect()

    async def pause(self) -> None:
        if self.paused:
            return
        await self.channel.disconnect()
        self.paused = True
        await self._resubscribe()
        logger.info("mode: paused")

    async def resume(self) -> None:
        if not self.paused:
            return
        self.scratch.clear()
        self.paused = False
        await self._resubscribe()
        await self.channel.connect()
        logger.info("mode: live")

    async def toggle(self) -> None:
        if self.paused:
            await self.resume()
        else:
            await self.pause()

    async def apply_filters(self, filters: FilterState) -> None:
        """Replace the filters. A new page size restarts pagination."""
        self.filters = filters
        self.pager.reset(filters.page_size)
        await self._resubscribe()

    def view(self) -> list[Message]:
        predicate, _ = compile_filters(self.filters)
        return merge_views(
            self.channel.messages(),
            self.scratch.values(),
            predicate,
            self.filters.sort_direction,
            self.paused,
        )

    def sources(self) -> list[str]:
        return self.channel.sources()

    async def load_more(self) -> bool:
        """
        Grow the live window, or fetch the next older page while paused.

        Ignored while a load is in flight or within the cooldown after the
        previous one. Returns whether a load ran.
        """
        if self._loading or self._clock() < self._next_load_at:
            return False

        self._loading = True
        try:
            if self.paused:
                await self._fetch_older()
            else:
                self.pager.grow()
                await self._resubscribe()
        finally:
            self._loading = False
            self._next_load_at = self._clock() + self.cooldown_seconds
        return True

    async def _fetch_older(self) -> None:
        visible = self.view()
        last = visible[-1] if visible else None
        try:
            page = await self.history.fetch_history(
                self.filters,
                limit=self.filters.page_size,
                before=last.created_at if last else None,
                before_id=last.id if last else None,
            )
        except HistoryFetchError as e:
            logger.warning("mode: history fetch failed: %s", e)
            return
        added = self.scratch.insert_new(page)
        logger.debug("mode: fetched %d messages, %d new", len(page), added)

    async def _resubscribe(self) -> None:
        await self.channel.subscribe("messages", self.publication_params())
