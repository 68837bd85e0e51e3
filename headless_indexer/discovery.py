"""
Project discovery - find project config files below a workspace root.

Depth-first, lexicographic, and pruned at denylisted directories.
A directory holding a config file is still descended into, so nested
sub-projects are found too.
"""

import fnmatch
import logging
import os
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAMES = ("pyproject.toml",)

DEFAULT_IGNORED_DIRS = frozenset({
    ".git", ".hg", ".svn",
    "node_modules", "__pycache__", ".venv", "venv", ".tox", ".eggs",
    ".mypy_cache", ".pytest_cache", ".ruff_cache",
    "dist", "build", "coverage", "site-packages",
})


def normalize_path(path: str) -> str:
    """Absolute, symlink-resolved form used for every path we store."""
    return os.path.realpath(os.path.abspath(os.path.expanduser(str(path))))


def discover(
    root: str,
    config_names: Iterable[str] = DEFAULT_CONFIG_NAMES,
    ignored_dirs: Iterable[str] = DEFAULT_IGNORED_DIRS,
) -> list[str]:
    """
    Find project config files under root.

    Returns:
        Absolute config paths; a directory's own config comes before
        configs of its subdirectories, siblings in name order.
    """
    names = set(config_names)
    ignored = frozenset(ignored_dirs)
    results: list[str] = []
    _walk_configs(normalize_path(root), names, ignored, results)
    return results


def _walk_configs(directory: str, names: set, ignored: frozenset, results: list[str]):
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        # permissions, or deleted while we were walking
        logger.debug(f"Skipping unreadable directory {directory}: {e}")
        return

    subdirs = []
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                if entry.name not in ignored:
                    subdirs.append(entry.path)
            elif entry.name in names and entry.is_file():
                results.append(entry.path)
        except OSError as e:
            logger.debug(f"Skipping {entry.path}: {e}")

    for subdir in subdirs:
        _walk_configs(subdir, names, ignored, results)


def is_ignored_path(root: str, path: str, ignored_dirs: Iterable[str] = DEFAULT_IGNORED_DIRS) -> bool:
    """True when any directory between root and path is denylisted."""
    rel = os.path.relpath(path, root)
    if rel.startswith(os.pardir):
        return False
    ignored = set(ignored_dirs)
    parts = rel.split(os.sep)[:-1]
    return any(part in ignored for part in parts)


def matches_exclude(relative_path: str, patterns: Iterable[str]) -> bool:
    """fnmatch against the relative path, its /-anchored form, and **/-stripped globs."""
    anchored = f"/{relative_path}"
    for pattern in patterns:
        candidates = [pattern]
        if pattern.startswith("**/"):
            candidates.append(pattern[3:])
        for candidate in candidates:
            if fnmatch.fnmatch(relative_path, candidate) or fnmatch.fnmatch(anchored, candidate):
                return True
    return False


def has_source_extension(path: str, extensions: Iterable[str]) -> bool:
    return os.path.splitext(path)[1].lower() in {ext.lower() for ext in extensions}


def iter_source_files(
    root: str,
    extensions: Iterable[str],
    exclude: Iterable[str] = (),
    ignored_dirs: Iterable[str] = DEFAULT_IGNORED_DIRS,
) -> Iterator[str]:
    """
    Yield member source files of a project in relative-path order.

    Symlinks are skipped; unreadable directories are skipped silently.
    """
    root = normalize_path(root)
    exts = {ext.lower() for ext in extensions}
    exclude = tuple(exclude)
    ignored = frozenset(ignored_dirs)

    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {current}: {e}")
            continue

        files = []
        dirs = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name not in ignored:
                        dirs.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    files.append(entry.path)
            except OSError:
                continue

        for path in files:
            if os.path.splitext(path)[1].lower() not in exts:
                continue
            rel = os.path.relpath(path, root).replace(os.sep, "/")
            if exclude and matches_exclude(rel, exclude):
                continue
            yield path

        stack.extend(reversed(dirs))
