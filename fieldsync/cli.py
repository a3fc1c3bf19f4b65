"""
fieldsync/cli.py - Command-line interface for the collector.

Usage:
    fieldsync serve                      # HTTP API (uvicorn)
    fieldsync init-db                    # create the PostgreSQL tables
    fieldsync sync payload.json          # apply one sync payload from a file
    fieldsync stats PROJECT              # print project statistics as JSON
    fieldsync stats PROJECT --figures-dir out/   # also write HTML figures
    fieldsync layers                     # record counts per project

The PostgreSQL DSN is read from --dsn, else FIELDSYNC_DSN (from the
environment or a .env file in the working directory or repo root). Without a
DSN, `serve` falls back to an in-memory store; the other commands need one.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path

from fieldsync.config import DEFAULT_CONFIG
from fieldsync.errors import FieldSyncError
from fieldsync.storage.base import RecordStore


# ── .env loader (stdlib only, no python-dotenv required) ─────────────────────

def _load_dotenv(env_file: str | None = None) -> dict[str, str]:
    """Load KEY=VALUE pairs from a .env file into os.environ.

    Existing environment values are NOT overwritten. Returns the newly
    loaded pairs.

    Args:
        env_file: Explicit path. If None, looks for .env in the working
                  directory, then in the repository root.
    """
    if env_file is None:
        for directory in (Path.cwd(), Path(__file__).parent.parent):
            candidate = directory / ".env"
            if candidate.is_file():
                env_file = str(candidate)
                break

    if not env_file or not Path(env_file).is_file():
        return {}

    loaded: dict[str, str] = {}
    with open(env_file, encoding="utf-8") as fh:
        for raw_line in fh:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with timestamps."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s  %(levelname)-8s  %(name)s - %(message)s"
    logging.basicConfig(level=numeric, format=fmt, datefmt="%H:%M:%S", stream=sys.stderr)


logger = logging.getLogger("fieldsync.cli")


def _dsn(args: argparse.Namespace) -> str | None:
    return args.dsn or os.environ.get(DEFAULT_CONFIG.dsn_env_var)


def _open_store(args: argparse.Namespace, allow_memory: bool = False) -> RecordStore:
    dsn = _dsn(args)
    if dsn:
        from fieldsync.storage.postgres import PostgresRecordStore

        return PostgresRecordStore(dsn)
    if not allow_memory:
        raise SystemExit(
            f"No database configured: pass --dsn or set {DEFAULT_CONFIG.dsn_env_var}."
        )
    from fieldsync.storage.memory import InMemoryRecordStore

    logger.warning("No DSN configured; using an in-memory store (data is lost on exit).")
    return InMemoryRecordStore()


def _close_store(store: RecordStore) -> None:
    close = getattr(store, "close", None)
    if close is not None:
        close()


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))


# ── Subcommands ───────────────────────────────────────────────────────────────

def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from fieldsync.api.endpoints import create_app

    store = _open_store(args, allow_memory=True)
    logger.info("Serving fieldsync on %s:%d", args.host, args.port)
    try:
        uvicorn.run(create_app(store), host=args.host, port=args.port, log_level=args.log_level.lower())
    finally:
        _close_store(store)
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the PostgreSQL tables if they do not exist."""
    store = _open_store(args)
    try:
        store.create_schema()
    finally:
        _close_store(store)
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Apply one JSON sync payload (same shape as POST /api/sync)."""
    from pydantic import ValidationError as PayloadError

    from fieldsync.api.endpoints import SyncBody
    from fieldsync.sync.service import sync_batch

    try:
        with open(args.payload, encoding="utf-8") as fh:
            request = SyncBody.model_validate(json.load(fh)).to_request()
    except (OSError, json.JSONDecodeError, PayloadError) as exc:
        logger.error("Cannot read payload %s: %s", args.payload, exc)
        return 1

    store = _open_store(args)
    try:
        result = sync_batch(store, request)
    except FieldSyncError as exc:
        logger.error("Sync failed: %s", exc)
        return 1
    finally:
        _close_store(store)

    _print_json(
        {
            "project_name": result.project_name,
            "created_count": result.created_count,
            "updated_count": result.updated_count,
            "total_records": result.total_records,
        }
    )
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Print the statistics of one project, optionally writing figures."""
    from fieldsync.sync.service import project_statistics

    store = _open_store(args)
    try:
        stats = project_statistics(store, args.project)
    except FieldSyncError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        _close_store(store)

    _print_json(asdict(stats))

    if args.figures_dir:
        from fieldsync.viz.figures import sunburst_figure, timeline_figure

        out_dir = Path(args.figures_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        sunburst_figure(stats).write_html(out_dir / "sunburst.html")
        timeline_figure(stats).write_html(out_dir / "timeline.html")
        logger.info("Figures written to %s", out_dir)
    return 0


def cmd_layers(args: argparse.Namespace) -> int:
    """Print record counts and last update per project."""
    from fieldsync.sync.service import layer_summaries

    store = _open_store(args)
    try:
        _print_json([asdict(layer) for layer in layer_summaries(store)])
    finally:
        _close_store(store)
    return 0


# ── Argument parser ───────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fieldsync",
        description=(
            "fieldsync: central collector for offline field-survey clients.\n"
            f"Reads {DEFAULT_CONFIG.dsn_env_var} from .env automatically."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the API against PostgreSQL
  FIELDSYNC_DSN=postgresql://localhost/fieldsync fieldsync serve --port 3000

  # Apply a payload captured from a field client
  fieldsync sync batch.json

  # Statistics plus HTML figures
  fieldsync stats "Forst Nord" --figures-dir figures/
        """,
    )
    parser.add_argument(
        "--env-file",
        default=None,
        metavar="PATH",
        help="Path to .env file (default: auto-detect)",
    )
    parser.add_argument(
        "--dsn",
        default=None,
        metavar="DSN",
        help=f"PostgreSQL DSN (overrides {DEFAULT_CONFIG.dsn_env_var})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    p_serve = subparsers.add_parser("serve", help="Serve the HTTP API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=3000)
    p_serve.set_defaults(func=cmd_serve)

    p_init = subparsers.add_parser("init-db", help="Create the PostgreSQL tables")
    p_init.set_defaults(func=cmd_init_db)

    p_sync = subparsers.add_parser("sync", help="Apply a JSON sync payload")
    p_sync.add_argument("payload", metavar="PAYLOAD", help="Path to the JSON payload")
    p_sync.set_defaults(func=cmd_sync)

    p_stats = subparsers.add_parser("stats", help="Print project statistics")
    p_stats.add_argument("project", metavar="PROJECT")
    p_stats.add_argument(
        "--figures-dir", default=None, metavar="PATH",
        help="Also write sunburst.html and timeline.html here",
    )
    p_stats.set_defaults(func=cmd_stats)

    p_layers = subparsers.add_parser("layers", help="Record counts per project")
    p_layers.set_defaults(func=cmd_layers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _load_dotenv(args.env_file)
    _setup_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
