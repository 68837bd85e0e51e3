"""
Analysis context pool - one long-lived analysis context per project.

The pool owns every context; contexts own their tracked files.
Version counters are the single source of truth for whether a cached
snapshot may be reused.
"""

import logging
import os
import threading
import tomllib
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Optional

from .analysis.base import AnalysisEngine
from .config import IndexerSettings
from .discovery import iter_source_files, normalize_path
from .errors import ConfigParseError, FileNotTracked
from .models import Project, ProjectOptions, Snapshot

logger = logging.getLogger(__name__)

OPTIONS_TABLE = ("tool", "headless-indexer")

EngineFactory = Callable[[Project, Callable[[str], Snapshot]], AnalysisEngine]


def _string_list(config_path: str, key: str, value) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigParseError(config_path, f"'{key}' must be a list of strings")
    return tuple(value)


def parse_options(config_path: str, root: str, table: dict, default_extensions) -> ProjectOptions:
    """Validate the [tool.headless-indexer] table."""
    extensions = tuple(default_extensions)
    if "extensions" in table:
        extensions = tuple(
            ext if ext.startswith(".") else f".{ext}"
            for ext in _string_list(config_path, "extensions", table["extensions"])
        )
    exclude = _string_list(config_path, "exclude", table["exclude"]) if "exclude" in table else ()
    extra_paths = ()
    if "extra-paths" in table:
        extra_paths = tuple(
            normalize_path(os.path.join(root, p))
            for p in _string_list(config_path, "extra-paths", table["extra-paths"])
        )
    environment = table.get("environment")
    if environment is not None and not isinstance(environment, str):
        raise ConfigParseError(config_path, "'environment' must be a string")
    return ProjectOptions(
        extensions=extensions,
        exclude=exclude,
        extra_paths=extra_paths,
        environment=environment,
    )


def load_project(config_path: str, settings: Optional[IndexerSettings] = None) -> Project:
    """
    Parse a project config and enumerate its member files.

    Raises:
        ConfigParseError: unreadable file, bad TOML, or mistyped options
    """
    settings = settings or IndexerSettings()
    config_path = normalize_path(config_path)
    root = os.path.dirname(config_path)

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigParseError(config_path, str(e)) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(config_path, f"invalid TOML: {e}") from e

    table = data
    for key in OPTIONS_TABLE:
        table = table.get(key, {}) if isinstance(table, dict) else {}
    if not isinstance(table, dict):
        raise ConfigParseError(config_path, "[tool.headless-indexer] must be a table")

    options = parse_options(config_path, root, table, settings.source_extensions)
    files = sorted(iter_source_files(
        root,
        options.extensions,
        exclude=options.exclude,
        ignored_dirs=settings.ignored_dirs,
    ))
    return Project(root=root, config_path=config_path, options=options, files=files)


def default_engine_factory(project: Project, snapshots) -> AnalysisEngine:
    from .analysis.python import JediEngine
    return JediEngine(project, snapshots)


class AnalysisContext:
    """
    Live analysis state of one project.

    Every mutation and every query holds the context lock, so a query
    never sees the context mid-mutation.
    """

    def __init__(self, project: Project, engine_factory: EngineFactory = default_engine_factory):
        self.project = project
        self._lock = threading.RLock()
        self._versions: dict[str, int] = {path: 0 for path in project.files}
        # last version of removed files, so a re-created file keeps counting up
        self._retired: dict[str, int] = {}
        self._snapshots: dict[str, Snapshot] = {}
        self.watched = False
        self.engine = engine_factory(project, self.snapshot)

    @property
    def root(self) -> str:
        return self.project.root

    @contextmanager
    def locked(self) -> Iterator["AnalysisContext"]:
        with self._lock:
            yield self

    def bump_version(self, path: str) -> int:
        """Create-or-increment a tracked file's version."""
        path = normalize_path(path)
        with self._lock:
            if path in self._versions:
                version = self._versions[path] + 1
            else:
                version = self._retired.pop(path, -1) + 1
                self.project.files.append(path)
            self._versions[path] = version
            self.engine.file_changed(path, version)
        logger.debug(f"{path} -> v{version}")
        return version

    def remove_file(self, path: str) -> bool:
        """Mark a file unavailable; later lookups raise FileNotTracked."""
        path = normalize_path(path)
        with self._lock:
            if path not in self._versions:
                return False
            self._retired[path] = self._versions.pop(path)
            self._snapshots.pop(path, None)
            self.project.files.remove(path)
            self.engine.file_changed(path, -1)
        logger.debug(f"{path} removed")
        return True

    def remove_tree(self, directory: str) -> list[str]:
        """Remove every tracked file below directory."""
        prefix = normalize_path(directory).rstrip(os.sep) + os.sep
        with self._lock:
            doomed = [p for p in self._versions if p.startswith(prefix)]
            for path in doomed:
                self.remove_file(path)
        return doomed

    def version(self, path: str) -> int:
        path = normalize_path(path)
        with self._lock:
            try:
                return self._versions[path]
            except KeyError:
                raise FileNotTracked(path, self.root) from None

    def has_file(self, path: str, version: Optional[int] = None) -> bool:
        """Whether path is tracked (at exactly version, if given). No disk I/O."""
        path = normalize_path(path)
        with self._lock:
            current = self._versions.get(path)
        if current is None:
            return False
        return version is None or current == version

    def file_names(self) -> list[str]:
        with self._lock:
            return sorted(self._versions)

    def snapshot(self, path: str) -> Snapshot:
        """
        Current snapshot of a tracked file.

        Reads from disk only when the version moved past the cached one.
        """
        path = normalize_path(path)
        with self._lock:
            version = self._versions.get(path)
            if version is None:
                raise FileNotTracked(path, self.root)
            cached = self._snapshots.get(path)
            if cached is not None and cached.version == version:
                return cached
            try:
                with open(path, encoding="utf-8", errors="replace", newline="") as f:
                    text = f.read()
            except OSError as e:
                logger.debug(f"Cannot read {path}: {e}")
                raise FileNotTracked(path, self.root) from e
            snapshot = Snapshot(path, version, text)
            self._snapshots[path] = snapshot
            return snapshot

    def to_dict(self) -> dict:
        info = self.project.to_dict()
        with self._lock:
            info["file_count"] = len(self._versions)
        info["watched"] = self.watched
        return info


class ContextPool:
    """
    Owns all analysis contexts, keyed by project root.

    root_index() is the Root Index the router scans: roots sorted by
    descending length, rebuilt on every registration.
    """

    def __init__(
        self,
        settings: Optional[IndexerSettings] = None,
        engine_factory: EngineFactory = default_engine_factory,
    ):
        self.settings = settings or IndexerSettings()
        self.engine_factory = engine_factory
        self._contexts: dict[str, AnalysisContext] = {}
        self._root_index: tuple[str, ...] = ()
        self._lock = threading.Lock()

    def create_context(self, config_path: str) -> AnalysisContext:
        """
        Build and register the context for one config file.

        Raises:
            ConfigParseError: config is malformed
        """
        project = load_project(config_path, self.settings)
        existing = self.get(project.root)
        if existing is not None:
            logger.warning(f"Project {project.root} already registered, keeping existing context")
            return existing
        context = AnalysisContext(project, self.engine_factory)
        if self.register(context) is not context:
            logger.warning(f"Project {project.root} already registered, keeping existing context")
            return self.get(project.root)
        logger.info(f"Initialized analysis context for {project.root} ({len(project.files)} files)")
        return context

    def populate(self, config_paths: Iterable[str]) -> list[AnalysisContext]:
        """
        Build contexts concurrently. Bad projects are logged and skipped.

        Returns contexts in the order of config_paths.
        """
        config_paths = list(config_paths)
        if not config_paths:
            return []

        def build(path: str) -> Optional[AnalysisContext]:
            try:
                return self.create_context(path)
            except ConfigParseError as e:
                logger.warning(f"Skipping project: {e}")
            except Exception as e:
                logger.error(f"Failed to initialize project {path}: {e}")
            return None

        workers = max(1, min(self.settings.discovery_workers, len(config_paths)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            built = list(executor.map(build, config_paths))
        return [context for context in built if context is not None]

    def register(self, context: AnalysisContext) -> AnalysisContext:
        """Add a context; if its root is already taken the existing one wins."""
        with self._lock:
            existing = self._contexts.get(context.root)
            if existing is not None:
                return existing
            self._contexts[context.root] = context
            self._root_index = tuple(sorted(self._contexts, key=lambda r: (-len(r), r)))
            return context

    def get(self, root: str) -> Optional[AnalysisContext]:
        with self._lock:
            return self._contexts.get(normalize_path(root))

    def contexts(self) -> list[AnalysisContext]:
        with self._lock:
            return [self._contexts[root] for root in sorted(self._contexts)]

    def root_index(self) -> tuple[str, ...]:
        return self._root_index

    def __len__(self) -> int:
        return len(self._contexts)
