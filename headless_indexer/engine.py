"""
Structural indexing engine - orchestrates discovery, contexts, watching and queries.

Usage:
1. indexer.initialize() - discover projects, build contexts, start watching
2. indexer.get_definition(path, line, character) - where a symbol is defined
3. indexer.get_references(path, line, character) - where a symbol is used
4. indexer.get_file_structure(path) - nested outline of a file
"""

import logging
import threading
from typing import Callable, Optional

from . import translator
from .config import IndexerSettings, load_settings
from .discovery import discover, normalize_path
from .errors import EngineQueryFailure, FileNotTracked, IndexerError
from .models import OutlineNode
from .pool import AnalysisContext, ContextPool, EngineFactory, default_engine_factory
from .router import ProjectRouter
from .watcher import WorkspaceWatcher

logger = logging.getLogger(__name__)


class StructuralIndexer:
    """
    Structural indexing engine

    Main features:
    1. initialize() - discovery + context pool + watcher, once per process
    2. get_definition() / get_references() / get_file_structure() - queries,
       positions 1-indexed on both sides
    3. list_projects() - what was discovered and whether it is watched

    Queries raise IndexerError subclasses; tool_registry turns them into
    error payloads.
    """

    def __init__(
        self,
        workspace_root: str,
        settings: Optional[IndexerSettings] = None,
        engine_factory: EngineFactory = default_engine_factory,
        watcher: Optional[WorkspaceWatcher] = None,
        watch: bool = True,
    ):
        self.workspace_root = normalize_path(workspace_root)
        self.settings = settings or load_settings(self.workspace_root)
        self.pool = ContextPool(self.settings, engine_factory)
        self.router = ProjectRouter(self.pool)
        self.watch_enabled = watch
        self.watcher = watcher or (WorkspaceWatcher(self.settings) if watch else None)

        self._init_lock = threading.Lock()
        self._summary: Optional[dict] = None

    @property
    def initialized(self) -> bool:
        return self._summary is not None

    def initialize(self) -> dict:
        """
        Discover projects, build their contexts and start watching them.

        Safe to call more than once; later calls return the first summary.

        Returns:
            {"workspace", "projects", "watched", "skipped"}
        """
        with self._init_lock:
            if self._summary is not None:
                logger.debug("initialize() called again, already initialized")
                return self._summary

            config_paths = discover(
                self.workspace_root,
                config_names=self.settings.config_names,
                ignored_dirs=self.settings.ignored_dirs,
            )
            logger.info(f"Found {len(config_paths)} projects for structural indexing")

            contexts = self.pool.populate(config_paths)

            watched = 0
            if self.watch_enabled and self.watcher is not None:
                for context in contexts:
                    if self.watcher.watch(context):
                        watched += 1

            self._summary = {
                "workspace": self.workspace_root,
                "projects": len(contexts),
                "watched": watched,
                "skipped": len(config_paths) - len(contexts),
            }
            logger.info(
                f"Structural index ready: {len(contexts)} projects, {watched} watched"
            )
            return self._summary

    def close(self):
        if self.watcher is not None:
            self.watcher.stop()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_definition(self, path: str, line: int, character: int) -> list[dict]:
        """
        Where is the symbol at (line, character) defined?

        Returns:
            [{"path", "line", "character", "kind", "name", "container_name"}, ...]
        """
        path = normalize_path(path)
        context = self.router.route(path)
        with context.locked():
            offset = translator.to_offset(context, path, line, character)
            definitions = self._call_engine(
                "get_definition", context.engine.resolve_definition, path, offset
            )
            results = []
            for d in definitions:
                position = self._position(context, d.path, d.offset)
                if position is None:
                    continue
                results.append({
                    "path": d.path,
                    "line": position[0],
                    "character": position[1],
                    "kind": d.kind,
                    "name": d.name,
                    "container_name": d.container_name,
                })
            return results

    def get_references(self, path: str, line: int, character: int) -> list[dict]:
        """
        Every usage of the symbol at (line, character) in its project.

        Returns:
            [{"path", "line", "character", "is_write", "is_definition"}, ...]
        """
        path = normalize_path(path)
        context = self.router.route(path)
        with context.locked():
            offset = translator.to_offset(context, path, line, character)
            references = self._call_engine(
                "get_references", context.engine.find_references, path, offset
            )
            results = []
            for r in references:
                position = self._position(context, r.path, r.offset)
                if position is None:
                    continue
                results.append({
                    "path": r.path,
                    "line": position[0],
                    "character": position[1],
                    "is_write": r.is_write,
                    "is_definition": r.is_definition,
                })
            return results

    def get_file_structure(self, path: str) -> list[dict]:
        """
        Outline of a file: top-level symbols with nested members.

        Returns:
            [{"name", "kind", "line", "character", "children": [...]}, ...]
        """
        path = normalize_path(path)
        context = self.router.route(path)
        with context.locked():
            # fails with FileNotTracked before the engine is asked
            context.snapshot(path)
            outline = self._call_engine(
                "get_file_structure", context.engine.get_outline, path
            )
            return [self._format_outline(context, path, node) for node in outline]

    def list_projects(self) -> list[dict]:
        return [context.to_dict() for context in self.pool.contexts()]

    # ------------------------------------------------------------------

    def _call_engine(self, operation: str, func: Callable, *args):
        try:
            result = func(*args)
        except IndexerError:
            raise
        except Exception as e:
            logger.error(f"Analysis engine failed in {operation}: {e}")
            raise EngineQueryFailure(operation, str(e)) from e
        return list(result or [])

    def _position(self, context: AnalysisContext, path: str, offset: int) -> Optional[tuple[int, int]]:
        try:
            return translator.to_line_char(context, path, offset)
        except FileNotTracked:
            logger.debug(f"Dropping result outside {context.root}: {path}")
            return None

    def _format_outline(self, context: AnalysisContext, path: str, node: OutlineNode) -> dict:
        line, character = translator.to_line_char(context, path, node.span_start)
        return {
            "name": node.name,
            "kind": node.kind,
            "line": line,
            "character": character,
            "children": [self._format_outline(context, path, child) for child in node.children],
        }
