"""
Headless Indexer - structural and semantic code queries for agents.

Finds every project under a workspace, keeps one analysis context per
project current from filesystem events, and answers definition,
reference and outline queries in 1-indexed line/character positions.

Usage:
    from headless_indexer import StructuralIndexer

    indexer = StructuralIndexer("/path/to/workspace")
    indexer.initialize()

    # Where is it defined
    indexer.get_definition("/path/to/workspace/app/main.py", 12, 9)

    # Who uses it
    indexer.get_references("/path/to/workspace/app/main.py", 12, 9)

    # What is in the file
    indexer.get_file_structure("/path/to/workspace/app/main.py")
"""

__version__ = "1.0.0"

from .engine import StructuralIndexer
from .errors import (
    ConfigParseError,
    EngineQueryFailure,
    FileNotTracked,
    IndexerError,
    PositionOutOfRange,
    ProjectNotFound,
    WatchSetupFailure,
)
from .models import DefinitionInfo, OutlineNode, Project, ReferenceInfo, Snapshot

__all__ = [
    "StructuralIndexer",
    "IndexerError",
    "ConfigParseError",
    "ProjectNotFound",
    "FileNotTracked",
    "PositionOutOfRange",
    "WatchSetupFailure",
    "EngineQueryFailure",
    "Project",
    "Snapshot",
    "DefinitionInfo",
    "ReferenceInfo",
    "OutlineNode",
]
