"""Analysis engine exports."""

from .base import AnalysisEngine, SnapshotSource
from .python import JediEngine

__all__ = [
    "AnalysisEngine",
    "SnapshotSource",
    "JediEngine",
]
