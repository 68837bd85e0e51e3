"""
Project router - map a file path to the context that owns it.

Longest root wins, so files of a nested sub-project route to the nested
project rather than the outer one. Matching is on path-segment
boundaries: /foo/bar2 is not inside /foo/bar.
"""

import os

from .discovery import normalize_path
from .errors import ProjectNotFound
from .pool import AnalysisContext, ContextPool


def is_within(root: str, path: str) -> bool:
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


class ProjectRouter:
    """Read-only view over the pool's Root Index."""

    def __init__(self, pool: ContextPool):
        self.pool = pool

    def find_root(self, path: str) -> str:
        absolute = normalize_path(path)
        # root_index is sorted longest first; linear scan is fine for the
        # project counts we see (a segment trie would keep the same contract)
        for root in self.pool.root_index():
            if is_within(root, absolute):
                return root
        raise ProjectNotFound(absolute)

    def route(self, path: str) -> AnalysisContext:
        """
        Raises:
            ProjectNotFound: no known root contains path
        """
        root = self.find_root(path)
        context = self.pool.get(root)
        if context is None:
            raise ProjectNotFound(normalize_path(path))
        return context
