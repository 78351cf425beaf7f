"""Interactive tail for the Livefeed CLI."""

from __future__ import annotations

import asyncio
import logging

from engine.kernel.filters import DEFAULT_FILTERS, PAGE_SIZE_CHOICES, FilterState
from engine.kernel.limits import MAX_LIMIT
from engine.kernel.types import MESSAGE_TYPES, Message

from feed_cli.config import Config
from feed_cli.debounce import Debouncer
from feed_cli.mode import ModeController

logger = logging.getLogger(__name__)

COLORS = {
    "info": "\033[36m",
    "warn": "\033[33m",
    "error": "\033[31m",
    "debug": "\033[90m",
}
RESET = "\033[0m"


def format_message(message: Message) -> str:
    stamp = message.created_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    color = COLORS.get(message.type, "")
    return f"{stamp} {color}{message.type.upper():5}{RESET} [{message.source}] {message.text}"


class Repl:
    """Prints the feed as it changes and reads filter commands from stdin."""

    def __init__(self, config: Config, controller: ModeController, refresh_seconds: float = 0.5):
        self.config = config
        self.controller = controller
        self.refresh_seconds = refresh_seconds
        self.running = True
        self._printed: set[str] = set()
        self._search = Debouncer(self._apply_search)

    async def start(self) -> None:
        await self.controller.start()
        print(f"feed > {self.controller.mode}. Type /help for commands.")
        printer = asyncio.create_task(self._print_loop())
        try:
            while self.running:
                try:
                    line = (await asyncio.to_thread(input, "")).strip()
                except EOFError:
                    break
                if line:
                    await self.handle(line)
        finally:
            printer.cancel()
            try:
                await printer
            except asyncio.CancelledError:
                pass
            await self._search.flush()
            self._save()

    async def handle(self, line: str) -> None:
        parts = line.split(maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""
        filters = self.controller.filters

        if cmd == "/quit":
            self.running = False
        elif cmd == "/pause":
            await self.controller.pause()
            self._after_mode_change()
        elif cmd == "/resume":
            await self.controller.resume()
            self._after_mode_change()
        elif cmd in ("/p", "/toggle"):
            await self.controller.toggle()
            self._after_mode_change()
        elif cmd == "/more":
            if await self.controller.load_more():
                self._print_new()
        elif cmd == "/search":
            self._search.push(arg)
        elif cmd == "/source":
            await self._apply(filters.with_changes(source=arg))
        elif cmd == "/types":
            wanted = {t.strip() for t in arg.split(",") if t.strip()}
            await self._apply(filters.with_changes(types=frozenset(t for t in MESSAGE_TYPES if t in wanted)))
        elif cmd == "/since":
            await self._apply(filters.with_changes(start_date=arg))
        elif cmd == "/until":
            await self._apply(filters.with_changes(end_date=arg))
        elif cmd == "/sort":
            if arg in ("asc", "desc"):
                await self._apply(filters.with_changes(sort_direction=arg))
            else:
                print("Usage: /sort asc|desc")
        elif cmd == "/pagesize":
            if arg.isdigit() and 0 < int(arg) <= MAX_LIMIT:
                await self._apply(filters.with_changes(page_size=int(arg)))
            else:
                print(f"Usage: /pagesize <n>   (e.g. {', '.join(map(str, PAGE_SIZE_CHOICES))})")
        elif cmd == "/clear":
            self._search.cancel()
            await self._apply(DEFAULT_FILTERS.with_changes(page_size=filters.page_size))
        elif cmd == "/sources":
            print("  " + ", ".join(self.controller.sources()))
        elif cmd == "/view":
            self._redraw()
        elif cmd == "/help":
            self._show_help()
        else:
            print(f"Unknown command: {cmd}")
            print("Type /help for available commands.")

    async def _apply(self, filters: FilterState) -> None:
        await self.controller.apply_filters(filters)
        self._save()
        self._redraw()

    async def _apply_search(self, text: str) -> None:
        await self._apply(self.controller.filters.with_changes(search=text))

    async def _print_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_seconds)
            self._print_new()

    def _after_mode_change(self) -> None:
        self._save()
        if self.controller.paused:
            self._status()
        else:
            self._redraw()

    def _print_new(self) -> None:
        view = self.controller.view()
        fresh = [m for m in view if m.id not in self._printed]
        # Oldest first, so the newest line ends up at the bottom
        fresh.sort(key=lambda m: m.created_at)
        for message in fresh:
            self._printed.add(message.id)
            print(format_message(message))
        # Only ids still on screen need remembering
        self._printed.intersection_update(m.id for m in view)

    def _redraw(self) -> None:
        self._printed.clear()
        self._status()
        self._print_new()

    def _status(self) -> None:
        query = self.controller.filters.to_query()
        described = " ".join(f"{k}={v}" for k, v in query.items()) or "no filters"
        print(f"-- {self.controller.mode} | {described} --")

    def _save(self) -> None:
        self.config.save_state(self.controller.filters, self.controller.paused)

    def _show_help(self) -> None:
        print("""
Commands:
  /pause, /resume   Suspend or resume the live stream
  /p                Toggle pause
  /more             Load one more page (older history while paused)
  /search <text>    Filter by text (case-insensitive)
  /source <name>    Filter by exact source (empty clears)
  /types a,b        Show only these types (info,warn,error,debug)
  /since YYYY-MM-DD Start date (inclusive)
  /until YYYY-MM-DD End date (inclusive)
  /sort asc|desc    Sort direction
  /pagesize <n>     Page size
  /clear            Reset filters
  /sources          List known sources
  /view             Redraw the current view
  /quit             Exit
""")
