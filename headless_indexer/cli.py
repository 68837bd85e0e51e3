"""
Command-line interface for the headless indexer.

Usage:
    headless-indexer projects
    headless-indexer definition <file> <line> <character>
    headless-indexer references <file> <line> <character>
    headless-indexer outline <file>
    headless-indexer search <query> [--limit N]
    headless-indexer index [dir]
    headless-indexer watch

Results go to stdout as JSON, logs to stderr.
"""

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

from . import __version__
from .config import IndexerSettings, load_settings
from .engine import StructuralIndexer
from .errors import IndexerError
from .semantic import SemanticIndexer
from .store.embedding import EmbeddingCache, create_embedding_provider
from .store.vector import VectorStore
from .tool_registry import execute_tool

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="headless-indexer",
        description="Headless Indexer - structural and semantic code queries",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--workspace", default=".", help="Workspace root (default: current directory)")
    parser.add_argument("--config", help="Settings YAML file (default: <workspace>/.headless-indexer.yml)")
    parser.add_argument("--log-level", help="Log level (default: from settings, INFO)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("projects", help="List discovered projects")

    for name, help_text in (
        ("definition", "Where is the symbol at a position defined"),
        ("references", "Every usage of the symbol at a position"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("file", help="Source file")
        p.add_argument("line", type=int, help="1-indexed line")
        p.add_argument("character", type=int, help="1-indexed character")

    outline_parser = subparsers.add_parser("outline", help="Outline of a file")
    outline_parser.add_argument("file", help="Source file")

    search_parser = subparsers.add_parser("search", help="Semantic search over indexed chunks")
    search_parser.add_argument("query", help="Natural language query")
    search_parser.add_argument("--limit", type=int, default=5, help="Number of results (default: 5)")

    index_parser = subparsers.add_parser("index", help="Index a directory for semantic search")
    index_parser.add_argument("dir", nargs="?", help="Directory (default: workspace root)")

    subparsers.add_parser("watch", help="Discover projects and keep them current until interrupted")

    return parser


def build_semantic(settings: IndexerSettings) -> SemanticIndexer:
    cache = EmbeddingCache(Path(settings.embedding_cache_dir)) if settings.embedding_cache_dir else None
    provider = create_embedding_provider(cache=cache)
    return SemanticIndexer(provider, VectorStore.from_settings(settings), settings)


def _emit(result) -> int:
    print(json.dumps(result, indent=2, ensure_ascii=False))
    if isinstance(result, dict) and result.get("ok") is False:
        return 1
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    workspace = os.path.abspath(args.workspace)
    try:
        settings = load_settings(workspace, config_file=args.config)
    except IndexerError as e:
        print(json.dumps({"ok": False, "error": e.to_dict()}, indent=2), file=sys.stdout)
        return 1

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    command = args.command
    watch = command == "watch"
    indexer = StructuralIndexer(workspace, settings=settings, watch=watch)
    semantic: Optional[SemanticIndexer] = None

    try:
        if command == "projects":
            return _emit(execute_tool("list_projects", {}, indexer))
        if command in ("definition", "references"):
            return _emit(execute_tool(
                "get_definition" if command == "definition" else "get_references",
                {"file_path": os.path.abspath(args.file), "line": args.line, "character": args.character},
                indexer,
            ))
        if command == "outline":
            return _emit(execute_tool(
                "get_file_structure", {"file_path": os.path.abspath(args.file)}, indexer
            ))
        if command == "search":
            semantic = build_semantic(settings)
            return _emit(execute_tool(
                "semantic_search",
                {"query": args.query, "limit": args.limit},
                indexer,
                semantic,
            ))
        if command == "index":
            # foreground: a background thread would die with the process
            semantic = build_semantic(settings)
            summary = semantic.index_directory(args.dir or workspace, show_progress=True)
            return _emit({"ok": True, "result": summary})
        if command == "watch":
            return cmd_watch(indexer)
    except IndexerError as e:
        return _emit({"ok": False, "error": e.to_dict()})
    finally:
        indexer.close()
        if semantic is not None:
            semantic.close()

    parser.print_help()
    return 0


def cmd_watch(indexer: StructuralIndexer) -> int:
    summary = indexer.initialize()
    _emit({"ok": True, "result": summary})
    sys.stdout.flush()
    logger.info("Watching for changes, Ctrl+C to stop")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopping watcher")
    return 0


if __name__ == "__main__":
    sys.exit(main())
