import argparse
import json
from pathlib import Path

from . import __version__
from .config import ConfigurationError, db_path_from_env, load_config
from .database import get_session, init_database
from .env import load_env
from .logger import get_logger
from .storage import EntityStore
from .sync import run_sync


def _config_from_args(args: argparse.Namespace):
    try:
        config = load_config(base_url=getattr(args, "base_url", None))
    except ConfigurationError as e:
        raise SystemExit(str(e))
    return config.with_overrides(
        db_path=getattr(args, "db", None),
        batch_size=getattr(args, "batch_size", None),
    )


def _db_path_from_args(args: argparse.Namespace) -> Path:
    return Path(args.db) if getattr(args, "db", None) else db_path_from_env()


def cmd_sync(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    if config.batch_size < 1:
        raise SystemExit("--batch-size must be at least 1")
    logger = get_logger(level=config.log_level)

    summary = run_sync(config=config, logger=logger)
    logger.log_metrics_summary()
    if summary is None:
        return
    print(
        f"Done. processed={summary.records_seen}/{summary.total_records} "
        f"updated={len(summary.updated_ids)} retired={len(summary.retired_ids)} "
        f"failed={len(summary.failed_ids)}"
    )
    if not summary.success:
        raise SystemExit(1)


def cmd_list(args: argparse.Namespace) -> None:
    db_path = _db_path_from_args(args)
    if not db_path.exists():
        print(f"Database not found: {db_path}")
        return
    session = get_session(db_path)
    try:
        entities = EntityStore(session).list_entities(include_unpublished=args.all)
        if not entities:
            print("No entities in database.")
            return
        print(f"Found {len(entities)} entities in {db_path}:\n")
        for entity in entities:
            print(f"ID: {entity.id}")
            print(f"  Status: {'published' if entity.status else 'unpublished'}")
            print(f"  Channel: {entity.channel or '-'}")
            print(f"  Category: {entity.category or '-'}")
            print(f"  Created: {entity.created.isoformat()}")
            print()
    finally:
        session.close()


def cmd_import(args: argparse.Namespace) -> None:
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        try:
            rows = json.load(f)
        except json.JSONDecodeError as e:
            raise SystemExit(f"Invalid JSON in {input_path}: {e}")
    if isinstance(rows, dict):
        rows = rows.get("entities", [])
    if not isinstance(rows, list):
        raise SystemExit("Expected a JSON list of entities or {\"entities\": [...]}")

    db_path = _db_path_from_args(args)
    init_database(db_path)
    session = get_session(db_path)
    try:
        counts = EntityStore(session).add_entities(r for r in rows if isinstance(r, dict))
    finally:
        session.close()
    print(f"Done. added={counts['added']} replaced={counts['replaced']} skipped={counts['skipped']}")


def main():
    # Load .env if present (THIRD_PARTY_BASE_URL, CHANNELSYNC_DB, ...)
    load_env()
    parser = argparse.ArgumentParser(
        prog="channelsync",
        description="Synchronize entity channel/category references with the platform API",
    )
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    syn = subparsers.add_parser(
        "sync",
        aliases=["cc"],
        help="Update channel/category names from the platform and retire dangling entities",
    )
    syn.add_argument("--batch-size", type=int, help="Entities to process per page (default: 25)")
    syn.add_argument("--base-url", help="Platform base URL (or set THIRD_PARTY_BASE_URL)")
    syn.add_argument("--db", help="Path to SQLite database (or set CHANNELSYNC_DB)")
    syn.set_defaults(func=cmd_sync)

    lst = subparsers.add_parser("list", help="List stored entities")
    lst.add_argument("--all", action="store_true", help="Include unpublished entities")
    lst.add_argument("--db", help="Path to SQLite database (or set CHANNELSYNC_DB)")
    lst.set_defaults(func=cmd_list)

    imp = subparsers.add_parser("import", help="Import entities from a JSON file")
    imp.add_argument("--input", required=True, help="JSON list of {id, channel, category, status, created}")
    imp.add_argument("--db", help="Path to SQLite database (or set CHANNELSYNC_DB)")
    imp.set_defaults(func=cmd_import)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
