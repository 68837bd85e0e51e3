"""
Python analysis engine backed by jedi.

The file being queried is handed to jedi from the context snapshot, so
answers always reflect the latest recorded version. Locations in files
the context does not track (stdlib, site-packages) are not reported.
"""

import logging
import threading
from typing import Optional

import jedi
from parso.cache import parser_cache

from ..discovery import normalize_path
from ..errors import FileNotTracked, PositionOutOfRange
from ..models import DefinitionInfo, OutlineNode, Project, ReferenceInfo, Snapshot
from .base import AnalysisEngine, SnapshotSource

logger = logging.getLogger(__name__)

# jedi's inference caches are process-global
_JEDI_LOCK = threading.Lock()

OUTLINE_KINDS = {"class", "function", "statement", "property"}
NESTING_KINDS = {"class", "function"}


class JediEngine(AnalysisEngine):
    """
    jedi-backed engine for one project

    Extracts:
    - definitions (goto, following imports)
    - references (project scope, builtins excluded)
    - outline (classes, functions, module/class level assignments)
    """

    def __init__(self, project: Project, snapshots: SnapshotSource):
        super().__init__(project, snapshots)
        self._jedi_project = jedi.Project(
            project.root,
            environment_path=project.options.environment,
            added_sys_path=list(project.options.extra_paths),
        )

    def _script(self, path: str) -> tuple[jedi.Script, Snapshot]:
        snapshot = self.snapshots(path)
        script = jedi.Script(snapshot.text, path=path, project=self._jedi_project)
        return script, snapshot

    def file_changed(self, path: str, version: int):
        """Drop parso's parsed module so imports of path are re-read."""
        with _JEDI_LOCK:
            for modules in parser_cache.values():
                for key in [k for k in modules if k is not None and normalize_path(str(k)) == path]:
                    del modules[key]

    def _offset(self, name) -> Optional[tuple[str, int]]:
        """jedi Name -> (path, offset), or None for files we do not track."""
        if name.module_path is None or name.line is None:
            return None
        path = normalize_path(str(name.module_path))
        try:
            snapshot = self.snapshots(path)
            return path, snapshot.offset_of(name.line - 1, name.column)
        except (FileNotTracked, PositionOutOfRange) as e:
            logger.debug(f"Dropping location {path}:{name.line}:{name.column}: {e}")
            return None

    def resolve_definition(self, path: str, offset: int) -> list[DefinitionInfo]:
        with _JEDI_LOCK:
            script, snapshot = self._script(path)
            line, column = snapshot.position_of(offset)
            names = script.goto(line + 1, column, follow_imports=True)

            results = []
            for name in names:
                location = self._offset(name)
                if location is None:
                    continue
                parent = name.parent()
                container = parent.name if parent is not None and parent.type != "module" else ""
                results.append(DefinitionInfo(
                    path=location[0],
                    offset=location[1],
                    kind=name.type,
                    name=name.name,
                    container_name=container,
                ))
            return results

    def find_references(self, path: str, offset: int) -> list[ReferenceInfo]:
        with _JEDI_LOCK:
            script, snapshot = self._script(path)
            line, column = snapshot.position_of(offset)
            names = script.get_references(line + 1, column, include_builtins=False)

            results = []
            for name in names:
                location = self._offset(name)
                if location is None:
                    continue
                is_definition = name.is_definition()
                results.append(ReferenceInfo(
                    path=location[0],
                    offset=location[1],
                    is_write=is_definition,
                    is_definition=is_definition,
                ))
            return results

    def get_outline(self, path: str) -> list[OutlineNode]:
        with _JEDI_LOCK:
            script, snapshot = self._script(path)
            names = script.get_names(all_scopes=False, definitions=True, references=False)
            return self._outline_nodes(names, path, snapshot)

    def _outline_nodes(self, names, path: str, snapshot, kinds=OUTLINE_KINDS) -> list[OutlineNode]:
        nodes = []
        for name in names:
            if name.type not in kinds:
                continue
            if name.module_path is not None and normalize_path(str(name.module_path)) != path:
                continue
            start = name.get_definition_start_position() or (name.line, name.column)
            try:
                span_start = snapshot.offset_of(start[0] - 1, start[1])
            except PositionOutOfRange:
                continue
            node = OutlineNode(name=name.name, kind=name.type, span_start=span_start)
            if name.type == "class":
                node.children = self._outline_nodes(name.defined_names(), path, snapshot)
            elif name.type == "function":
                # locals are not part of the outline, nested defs are
                node.children = self._outline_nodes(
                    name.defined_names(), path, snapshot, kinds=NESTING_KINDS
                )
            nodes.append(node)
        return nodes
