"""
File change watcher - keeps context versions current from filesystem events.

One watchdog observer, one recursive watch per project. A project whose
watch cannot be set up (watch cap reached, inotify exhausted, ...) keeps
working from its startup file set; it just stops seeing edits.
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from .config import IndexerSettings
from .discovery import (
    DEFAULT_IGNORED_DIRS,
    has_source_extension,
    is_ignored_path,
    iter_source_files,
    matches_exclude,
    normalize_path,
)
from .errors import WatchSetupFailure
from .models import ChangeType
from .pool import AnalysisContext
from .router import is_within

logger = logging.getLogger(__name__)


@dataclass
class FileChange:
    path: str
    project: str
    change_type: ChangeType


def create_observer(use_polling: bool = False) -> BaseObserver:
    """Native observer, or a polling one for filesystems without events."""
    if use_polling:
        logger.info("Using polling observer for filesystem events")
        return PollingObserver()
    return Observer()


class ProjectEventHandler(FileSystemEventHandler):
    """
    Translate watchdog events for one project into version bumps.

    Bumps and removals go through the context, which serializes them
    under its lock.
    """

    def __init__(self, context: AnalysisContext, ignored_dirs=DEFAULT_IGNORED_DIRS):
        super().__init__()
        self.context = context
        self.root = context.root
        self.extensions = context.project.options.extensions
        self.exclude = context.project.options.exclude
        self.ignored_dirs = frozenset(ignored_dirs)

    def is_source(self, path: str) -> bool:
        if not is_within(self.root, path):
            return False
        if is_ignored_path(self.root, path, self.ignored_dirs):
            return False
        if not has_source_extension(path, self.extensions):
            return False
        rel = os.path.relpath(path, self.root).replace(os.sep, "/")
        return not (self.exclude and matches_exclude(rel, self.exclude))

    def apply(self, change: FileChange) -> Optional[int]:
        """
        Apply one change to the context.

        Returns:
            The new version, or None when the change was a removal or ignored.
        """
        path = change.path
        if is_ignored_path(self.root, path, self.ignored_dirs):
            return None
        if change.change_type == ChangeType.DELETED:
            self.context.remove_file(path)
            return None
        if self.context.has_file(path) or self.is_source(path):
            return self.context.bump_version(path)
        return None

    def _change(self, path: str, change_type: ChangeType) -> Optional[int]:
        return self.apply(FileChange(path=path, project=self.root, change_type=change_type))

    def _add_tree(self, directory: str):
        rel = os.path.relpath(directory, self.root)
        if any(part in self.ignored_dirs for part in rel.split(os.sep)):
            return
        for path in iter_source_files(directory, self.extensions, ignored_dirs=self.ignored_dirs):
            self._change(path, ChangeType.CREATED)

    def on_created(self, event: FileSystemEvent):
        path = normalize_path(os.fsdecode(event.src_path))
        if event.is_directory:
            self._add_tree(path)
        else:
            self._change(path, ChangeType.CREATED)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self._change(normalize_path(os.fsdecode(event.src_path)), ChangeType.MODIFIED)

    def on_deleted(self, event: FileSystemEvent):
        path = normalize_path(os.fsdecode(event.src_path))
        if event.is_directory:
            self.context.remove_tree(path)
        else:
            self._change(path, ChangeType.DELETED)

    def on_moved(self, event: FileSystemEvent):
        src = normalize_path(os.fsdecode(event.src_path))
        dest = normalize_path(os.fsdecode(event.dest_path))
        if event.is_directory:
            self.context.remove_tree(src)
            if is_within(self.root, dest):
                self._add_tree(dest)
            return
        self._change(src, ChangeType.DELETED)
        if is_within(self.root, dest):
            self._change(dest, ChangeType.CREATED)


class WorkspaceWatcher:
    """
    Owns the observer and the per-project watches.

    At most max_watches projects are watched at once; the rest are
    degraded to unwatched.
    """

    def __init__(
        self,
        settings: Optional[IndexerSettings] = None,
        observer_factory: Optional[Callable[[], BaseObserver]] = None,
    ):
        self.settings = settings or IndexerSettings()
        self.max_watches = self.settings.max_watches
        self._observer_factory = observer_factory or (
            lambda: create_observer(self.settings.use_polling)
        )
        self._observer: Optional[BaseObserver] = None
        self._watches: dict = {}
        self.failures: dict[str, str] = {}
        self._lock = threading.Lock()

    def _ensure_started(self) -> BaseObserver:
        if self._observer is None:
            observer = self._observer_factory()
            # started before schedule() so emitter errors surface there
            observer.start()
            self._observer = observer
        return self._observer

    def watch(self, context: AnalysisContext) -> bool:
        """
        Start watching a project.

        Returns:
            False if the project was degraded to unwatched.
        """
        try:
            self._schedule(context)
        except WatchSetupFailure as e:
            logger.warning(f"{e}; serving startup file set without live updates")
            self.failures[context.root] = e.reason
            context.watched = False
            return False
        context.watched = True
        self.failures.pop(context.root, None)
        logger.info(f"Watching {context.root}")
        return True

    def _schedule(self, context: AnalysisContext):
        with self._lock:
            if context.root in self._watches:
                return
            if len(self._watches) >= self.max_watches:
                raise WatchSetupFailure(context.root, f"watch limit reached ({self.max_watches})")
            handler = ProjectEventHandler(context, self.settings.ignored_dirs)
            try:
                observer = self._ensure_started()
                watch = observer.schedule(handler, context.root, recursive=True)
            except OSError as e:
                raise WatchSetupFailure(context.root, str(e)) from e
            self._watches[context.root] = (watch, handler)

    def unwatch(self, context: AnalysisContext):
        with self._lock:
            entry = self._watches.pop(context.root, None)
            if entry is not None and self._observer is not None:
                self._observer.unschedule(entry[0])
        context.watched = False

    def handler_for(self, root: str) -> Optional[ProjectEventHandler]:
        entry = self._watches.get(normalize_path(root))
        return entry[1] if entry else None

    def watched_roots(self) -> list[str]:
        with self._lock:
            return sorted(self._watches)

    def stop(self):
        with self._lock:
            observer, self._observer = self._observer, None
            self._watches.clear()
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)

