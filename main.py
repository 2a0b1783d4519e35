"""Command-line interface for the registration panel."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from formpanel.config import Settings, load_settings
from formpanel.database import RecordStore
from formpanel.export import iter_csv
from formpanel.middleware import configure_access_log
from formpanel.service import build_store

logger = logging.getLogger("formpanel.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Registration panel utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the record store schema")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: FORMPANEL_HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: FORMPANEL_PORT or 3000)",
    )
    serve_parser.add_argument("--config", default=None, help="Path to a YAML settings file")

    export_parser = subparsers.add_parser("export", help="Write every record as CSV")
    export_parser.add_argument(
        "--output",
        "-o",
        default=None,
        help="Destination file (default: standard output)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "export"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _connect(settings: Settings) -> RecordStore:
    store = build_store(settings)
    store.connect_with_retry(settings.retry_delay)
    return store


def _serve(settings: Settings, *, host: str | None, port: int | None) -> None:
    from formpanel.service import create_app
    import uvicorn

    store = _connect(settings)
    bind_host = host or settings.host
    bind_port = port or settings.port
    configure_access_log(settings.access_log_path)
    logger.info("Starting registration panel on http://%s:%s", bind_host, bind_port)

    app = create_app(settings, store=store)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


def _export(settings: Settings, output: str | None) -> None:
    store = _connect(settings)
    records = store.list_all()
    if output:
        with Path(output).open("w", encoding="utf-8", newline="") as handle:
            handle.writelines(iter_csv(records))
        logger.info("Exported %d records to %s", len(records), output)
    else:
        sys.stdout.writelines(iter_csv(records))


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    config_path = getattr(args, "config", None)
    settings = load_settings(Path(config_path) if config_path else None)

    if args.command == "serve":
        _serve(settings, host=getattr(args, "host", None), port=getattr(args, "port", None))
    elif args.command == "init-db":
        _connect(settings)
        print(f"Record store initialised at {settings.database_path}.")
    elif args.command == "export":
        _export(settings, args.output)


if __name__ == "__main__":
    main()
