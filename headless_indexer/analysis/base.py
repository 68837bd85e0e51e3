"""
Base analysis engine interface.
"""

from abc import ABC, abstractmethod
from typing import Callable

from ..models import DefinitionInfo, OutlineNode, Project, ReferenceInfo, Snapshot

SnapshotSource = Callable[[str], Snapshot]


class AnalysisEngine(ABC):
    """
    Analysis engine base class

    One instance per project context. Positions in and out are absolute
    offsets into the context's current snapshots.

    Subclasses must implement:
    - resolve_definition(): where the symbol at offset is defined
    - find_references(): every usage of the symbol at offset
    - get_outline(): nested symbol tree of a file
    """

    def __init__(self, project: Project, snapshots: SnapshotSource):
        self.project = project
        self.snapshots = snapshots

    @abstractmethod
    def resolve_definition(self, path: str, offset: int) -> list[DefinitionInfo]:
        pass

    @abstractmethod
    def find_references(self, path: str, offset: int) -> list[ReferenceInfo]:
        pass

    @abstractmethod
    def get_outline(self, path: str) -> list[OutlineNode]:
        pass

    def file_changed(self, path: str, version: int):
        """Called after a version bump or removal (version -1)."""
        pass
