"""CLI entry point for sharednotes."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import Config, load_config
from .errors import RemoteError, SyncError
from .models import Note
from .notes_client import NotesClient
from .storage import NoteStore
from .sync import SyncEngine


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler])


def format_note(note: Note) -> str:
    return f"[{note.title}] v{note.version}\n{note.content}"


def open_store(config: Config) -> NoteStore:
    store = NoteStore(config.storage.db_path)
    store.connect()
    return store


def open_client(config: Config) -> NotesClient:
    return NotesClient(config.remote.base_url, timeout=config.remote.timeout_seconds)


async def cmd_watch(args: argparse.Namespace) -> int:
    """Print a note every time it changes locally or remotely."""
    config = load_config(args.config)
    store = open_store(config)

    try:
        async with open_client(config) as client:
            engine = SyncEngine(store, client, poll_interval=config.sync.poll_interval_seconds)
            seen = 0
            try:
                async for note in engine.get_synced(args.title).stream():
                    print(format_note(note), flush=True)
                    print()
                    seen += 1
                    if args.count and seen >= args.count:
                        break
            finally:
                await engine.close()
    finally:
        store.close()

    return 0


async def cmd_put(args: argparse.Namespace) -> int:
    """Save a note locally and push it to the server."""
    config = load_config(args.config)
    store = open_store(config)

    try:
        async with open_client(config) as client:
            engine = SyncEngine(store, client, poll_interval=config.sync.poll_interval_seconds)
            current = store.find(args.title) or Note(title=args.title)
            saved = engine.upsert_synced(current.with_content(args.content))
            await engine.wait_for_pending_writes()
    finally:
        store.close()

    print(format_note(saved))
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Show the locally cached copy of a note."""
    config = load_config(args.config)
    store = open_store(config)

    try:
        note = store.find(args.title)
    finally:
        store.close()

    if note is None:
        print(f"No local note titled {args.title!r}", file=sys.stderr)
        return 1

    if args.json:
        print(note.to_json())
    else:
        print(format_note(note))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List all locally cached notes."""
    config = load_config(args.config)
    store = open_store(config)

    try:
        notes = store.list_notes()
    finally:
        store.close()

    if args.json:
        print(json.dumps([note.to_dict() for note in notes], indent=2))
        return 0

    if not notes:
        print("No local notes")
        return 0

    for note in notes:
        print(f"  {note.title}  (v{note.version}, {len(note.content)} chars)")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete the local copy of a note."""
    config = load_config(args.config)
    store = open_store(config)

    try:
        note = store.find(args.title)
        if note is None:
            print(f"No local note titled {args.title!r}", file=sys.stderr)
            return 1
        store.delete(note)
    finally:
        store.close()

    print(f"Deleted local note {args.title!r}")
    return 0


async def cmd_echo(args: argparse.Namespace) -> int:
    """Check connectivity with the server's echo endpoint."""
    config = load_config(args.config)

    async with open_client(config) as client:
        try:
            body = await client.echo(args.message)
        except RemoteError as e:
            print(f"Echo failed: {e}", file=sys.stderr)
            return 1

    print(body)
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="sharednotes",
        description="Keep local notes in sync with a shared notes server",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    watch_parser = subparsers.add_parser("watch", help="Follow a note as it changes")
    watch_parser.add_argument("title", help="Note title")
    watch_parser.add_argument(
        "-n", "--count",
        type=int,
        default=0,
        help="Stop after this many updates (default: run until interrupted)",
    )
    watch_parser.set_defaults(func=cmd_watch)

    put_parser = subparsers.add_parser("put", help="Save a note and push it to the server")
    put_parser.add_argument("title", help="Note title")
    put_parser.add_argument("content", help="New note content")
    put_parser.set_defaults(func=cmd_put)

    show_parser = subparsers.add_parser("show", help="Show the local copy of a note")
    show_parser.add_argument("title", help="Note title")
    show_parser.add_argument("--json", action="store_true", help="Output note as JSON")
    show_parser.set_defaults(func=cmd_show)

    list_parser = subparsers.add_parser("list", help="List local notes")
    list_parser.add_argument("--json", action="store_true", help="Output notes as JSON")
    list_parser.set_defaults(func=cmd_list)

    delete_parser = subparsers.add_parser("delete", help="Delete the local copy of a note")
    delete_parser.add_argument("title", help="Note title")
    delete_parser.set_defaults(func=cmd_delete)

    echo_parser = subparsers.add_parser("echo", help="Check connectivity with the server")
    echo_parser.add_argument("message", help="Message to echo")
    echo_parser.set_defaults(func=cmd_echo)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    try:
        if inspect.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except (SyncError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
