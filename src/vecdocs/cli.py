#!/usr/bin/env python3
"""
CLI for inspecting and maintaining the vector document store.

Usage:
    python -m vecdocs.cli --help
    python -m vecdocs.cli init-schema
    python -m vecdocs.cli stats --json
    python -m vecdocs.cli current <recipe_id>
    python -m vecdocs.cli history <recipe_id> --include-deleted
    python -m vecdocs.cli soft-delete <version_id>
    python -m vecdocs.cli search --vector-file query.json --project P1 --limit 5
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import VectorStoreConfig
from .core.exceptions import VectorStoreError
from .core.logging import configure_logging
from .store import create_vector_store


logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_init_schema(store, args: argparse.Namespace) -> int:
    """Create the vector document table and indexes."""
    store.init_schema()
    print(f"Schema ready ({store.backend_name}, {store.dimensions} dimensions)")
    return 0


def cmd_stats(store, args: argparse.Namespace) -> int:
    """Show document counts."""
    stats = store.get_stats()

    if args.json:
        _print_json(stats.to_dict())
        return 0

    print("\nVector Document Stats")
    print("=" * 50)
    print(f"Total:        {stats.total}")
    print(f"Current:      {stats.current}")
    print(f"Not current:  {stats.not_current}")
    print(f"Deleted:      {stats.deleted}")
    return 0


def cmd_current(store, args: argparse.Namespace) -> int:
    """Show the current document of a recipe."""
    document = store.get_current_for_recipe(args.recipe_id)
    if document is None:
        print(f"No current document for recipe {args.recipe_id}", file=sys.stderr)
        return 1

    _print_json(document.to_dict())
    return 0


def cmd_history(store, args: argparse.Namespace) -> int:
    """List all documents of a recipe."""
    documents = store.list_for_recipe(args.recipe_id, include_deleted=args.include_deleted)
    _print_json([document.to_dict() for document in documents])
    return 0


def cmd_soft_delete(store, args: argparse.Namespace) -> int:
    """Soft-delete the live document of a version."""
    deleted = store.soft_delete(args.version_id)
    print("deleted" if deleted else "nothing to delete")
    return 0


def cmd_search(store, args: argparse.Namespace) -> int:
    """Run a similarity search with a precomputed query embedding."""
    try:
        with open(args.vector_file, "r", encoding="utf-8") as f:
            query_embedding = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read query vector from {args.vector_file}: {e}")
        return 1

    hits = store.similarity_search(
        query_embedding,
        limit=args.limit if args.limit is not None else args.store_config.default_limit,
        threshold=args.threshold if args.threshold is not None else args.store_config.default_threshold,
        project_ids=args.project or None,
    )

    if args.json:
        _print_json([hit.to_dict() for hit in hits])
        return 0

    print(f"\n{len(hits)} hits")
    print("=" * 50)
    for rank, hit in enumerate(hits, start=1):
        print(f"{rank:>3}. {hit.similarity:.4f}  {hit.title} ({hit.short_id}, version {hit.version_id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vecdocs",
        description="Inspect and maintain the recipe vector document store",
    )
    parser.add_argument("--config", type=Path, help="Path to YAML config file")
    parser.add_argument("--backend", choices=["sqlserver", "sqlite"], help="Override backend")
    parser.add_argument("--db-path", help="SQLite database path (sqlite backend)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--structured-logs", action="store_true", help="JSON log lines")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_init = subparsers.add_parser("init-schema", help="Create table and indexes")
    p_init.set_defaults(func=cmd_init_schema)

    p_stats = subparsers.add_parser("stats", help="Show document counts")
    p_stats.add_argument("--json", action="store_true", help="Output JSON")
    p_stats.set_defaults(func=cmd_stats)

    p_current = subparsers.add_parser("current", help="Show a recipe's current document")
    p_current.add_argument("recipe_id")
    p_current.set_defaults(func=cmd_current)

    p_history = subparsers.add_parser("history", help="List a recipe's documents")
    p_history.add_argument("recipe_id")
    p_history.add_argument("--include-deleted", action="store_true")
    p_history.set_defaults(func=cmd_history)

    p_delete = subparsers.add_parser("soft-delete", help="Soft-delete a version's document")
    p_delete.add_argument("version_id")
    p_delete.set_defaults(func=cmd_soft_delete)

    p_search = subparsers.add_parser("search", help="Similarity search")
    p_search.add_argument("--vector-file", required=True, help="JSON file with the query embedding")
    p_search.add_argument("--limit", type=int)
    p_search.add_argument("--threshold", type=float)
    p_search.add_argument("--project", action="append", help="Project id to scope by (repeatable)")
    p_search.add_argument("--json", action="store_true", help="Output JSON")
    p_search.set_defaults(func=cmd_search)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        structured=args.structured_logs,
    )

    try:
        config = VectorStoreConfig(args.config)
        args.store_config = config
        store = create_vector_store(
            config,
            backend=args.backend,
            db_path=args.db_path,
            auto_init=False,
        )
    except (VectorStoreError, FileNotFoundError, ImportError) as e:
        logger.error(f"Could not open vector store: {e}")
        return 2

    try:
        with store:
            return args.func(store, args)
    except VectorStoreError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
