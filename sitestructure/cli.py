"""Command-line interface for inspecting and editing a session's site structure."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import StorageConfig
from .langfuse import LangfuseClient
from .models import ValidationError
from .observability import SessionObservability
from .site_map import SiteMapRecorder
from .structure import StructureError, StructureIndex


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = StorageConfig.from_env()
    parser = argparse.ArgumentParser(description="Record and query site structure nodes")
    parser.add_argument(
        "--db",
        default=defaults.db_path,
        help=f"SQLite database holding the STRUCTURE table (default: {defaults.db_path})",
    )
    parser.add_argument(
        "--storage-root",
        type=Path,
        default=defaults.storage_root,
        help=f"Directory where session telemetry is written (default: {defaults.storage_root})",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Record a request URL and its ancestors")
    record.add_argument("session_id", type=int)
    record.add_argument("url")
    record.add_argument("--method", default="GET")
    record.add_argument("--history-id", type=int, default=None)

    find = subparsers.add_parser("find", help="Look a node up by name and method")
    find.add_argument("session_id", type=int)
    find.add_argument("name")
    find.add_argument("--method", default="GET")

    children = subparsers.add_parser("children", help="List the direct children of a node")
    children.add_argument("session_id", type=int)
    children.add_argument("parent_id", type=int, nargs="?", default=0)

    tree = subparsers.add_parser("tree", help="Print the session's site tree")
    tree.add_argument("session_id", type=int)

    delete = subparsers.add_parser("delete", help="Delete a leaf node or a whole subtree")
    delete.add_argument("session_id", type=int)
    delete.add_argument("structure_id", type=int)
    delete.add_argument("--subtree", action="store_true", help="Also delete all descendants")

    return parser.parse_args(argv)


def run_command(args: argparse.Namespace, index: StructureIndex) -> object:
    if args.command == "record":
        result = SiteMapRecorder(index).record(
            args.session_id, args.url, method=args.method, history_id=args.history_id
        )
        return result.to_dict()
    if args.command == "find":
        node = index.find(args.session_id, args.name, args.method.upper())
        return node.to_dict() if node else None
    if args.command == "children":
        nodes = index.get_children(args.session_id, args.parent_id)
        return {
            "parent_id": args.parent_id,
            "count": len(nodes),
            "children": [node.to_dict() for node in nodes],
        }
    if args.command == "tree":
        return SiteMapRecorder(index).render(args.session_id)
    if args.command == "delete":
        if args.subtree:
            removed = index.delete_subtree(args.session_id, args.structure_id)
        else:
            removed = 1 if index.delete_leaf(args.session_id, args.structure_id) else 0
        return {"structure_id": args.structure_id, "removed": removed}
    raise SystemExit(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = StorageConfig(db_path=str(args.db), storage_root=args.storage_root)
    telemetry = SessionObservability(config.storage_root, langfuse_client=LangfuseClient.from_env())
    try:
        with StructureIndex.open(config, telemetry=telemetry) as index:
            result = run_command(args, index)
    except ValidationError as exc:
        print("Invalid node. See validation errors below:", file=sys.stderr)
        for field, message in exc.errors.items():
            print(f" - {field}: {message}", file=sys.stderr)
        raise SystemExit(1)
    except StructureError as exc:
        print(f"Structure operation failed: {exc}", file=sys.stderr)
        raise SystemExit(2)
    if isinstance(result, str):
        print(result)
    else:
        print(json.dumps(result, indent=2))


if __name__ == "__main__":  # pragma: no cover
    main()
