"""Main entry point for the Livefeed CLI."""
from __future__ import annotations

import asyncio
import logging
import sys

import websockets

from feed_cli import __version__
from feed_cli.client import ApiClient, HistoryFetchError, WebSocketChannel
from feed_cli.config import DEFAULT_API_URL, Config
from feed_cli.mode import ModeController
from feed_cli.repl import Repl, format_message


def print_help():
    """Print help message."""
    print(f"""
Livefeed CLI v{__version__}

Usage:
  feed [options] [command]

Commands:
  tail              Follow the live feed (default)
  history           Print older messages page by page, using saved filters
  reset             Forget saved filters and pause state

Options:
  --api-url URL     Override API endpoint (default: {DEFAULT_API_URL})
  --pages N         Pages to print for 'history' (default: 1)
  --debug           Verbose logging
  -h, --help        Show this help
  -v, --version     Show version

Environment:
  FEED_API_URL      Override API endpoint (same as --api-url)

Examples:
  feed                                      # Tail the local server
  feed tail --api-url http://feed.internal  # Tail another server
  feed history --pages 3                    # Three pages of history
""")


def parse_args(args: list[str]) -> dict:
    """
    Parse command line arguments.

    Returns dict with:
        command: str (tail, history, reset)
        api_url: str | None
        pages: int
        debug: bool
        show_help: bool
        show_version: bool
    """
    result = {
        "command": "tail",
        "api_url": None,
        "pages": 1,
        "debug": False,
        "show_help": False,
        "show_version": False,
    }

    i = 0
    while i < len(args):
        arg = args[i]

        if arg in ("tail", "history", "reset"):
            result["command"] = arg
        elif arg == "--api-url":
            if i + 1 < len(args):
                result["api_url"] = args[i + 1]
                i += 1
            else:
                print("Error: --api-url requires a URL")
                sys.exit(1)
        elif arg == "--pages":
            if i + 1 < len(args) and args[i + 1].isdigit() and int(args[i + 1]) > 0:
                result["pages"] = int(args[i + 1])
                i += 1
            else:
                print("Error: --pages requires a positive number")
                sys.exit(1)
        elif arg == "--debug":
            result["debug"] = True
        elif arg in ("--help", "-h"):
            result["show_help"] = True
        elif arg in ("--version", "-v"):
            result["show_version"] = True
        elif arg.startswith("-"):
            print(f"Unknown option: {arg}")
            print("Run 'feed --help' for usage.")
            sys.exit(1)
        else:
            print(f"Unknown command: {arg}")
            print("Run 'feed --help' for usage.")
            sys.exit(1)

        i += 1

    return result


async def tail(config: Config) -> None:
    """Follow the live feed until /quit or EOF."""
    filters, paused = config.load_state()
    client = ApiClient(config.api_url)
    channel = WebSocketChannel(client.live_url)
    controller = ModeController(channel, client, filters, paused=paused)
    try:
        await Repl(config, controller).start()
    finally:
        await channel.disconnect()
        await client.aclose()


async def history(config: Config, pages: int) -> bool:
    """Print `pages` pages of history. Returns False on transport failure."""
    filters, _ = config.load_state()
    client = ApiClient(config.api_url)
    try:
        last = None
        for _ in range(pages):
            page = await client.fetch_history(
                filters,
                limit=filters.page_size,
                before=last.created_at if last else None,
                before_id=last.id if last else None,
            )
            for message in page:
                print(format_message(message))
            if len(page) < filters.page_size:
                break
            last = page[-1]
    except HistoryFetchError as e:
        print(f"Failed to fetch history: {e}")
        return False
    finally:
        await client.aclose()
    return True


def main():
    """Main entry point."""
    args = parse_args(sys.argv[1:])

    if args["show_help"]:
        print_help()
        return

    if args["show_version"]:
        print(f"feed-cli {__version__}")
        return

    logging.basicConfig(
        level=logging.DEBUG if args["debug"] else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = Config(api_url_override=args["api_url"])

    if args["command"] == "reset":
        config.clear_state()
        print("Saved filters cleared.")
        return

    if args["command"] == "history":
        success = asyncio.run(history(config, args["pages"]))
        sys.exit(0 if success else 1)

    try:
        asyncio.run(tail(config))
    except KeyboardInterrupt:
        print()
    except (OSError, websockets.WebSocketException) as e:
        print(f"Cannot reach {config.api_url}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
