"""
Core data models for the structural indexer.

Project   - one configured source tree (root + options + member files)
Snapshot  - one tracked file's text at one version
*Info     - raw analysis results, positioned by absolute offsets
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import PositionOutOfRange

DEFAULT_EXTENSIONS = (".py", ".pyi")


class ChangeType(str, Enum):
    """Filesystem change kinds reported by the watcher"""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ProjectOptions:
    """Analysis options read from [tool.headless-indexer]."""
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    exclude: tuple[str, ...] = ()
    extra_paths: tuple[str, ...] = ()   # absolute
    environment: Optional[str] = None   # python executable

    def to_dict(self) -> dict:
        return {
            "extensions": list(self.extensions),
            "exclude": list(self.exclude),
            "extra_paths": list(self.extra_paths),
            "environment": self.environment,
        }


@dataclass
class Project:
    """
    One discovered project.

    root is an ancestor of (or equal to) every member file.
    """
    root: str
    config_path: str
    options: ProjectOptions = field(default_factory=ProjectOptions)
    files: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.root.rstrip("/").rsplit("/", 1)[-1] or self.root

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "root": self.root,
            "config_path": self.config_path,
            "options": self.options.to_dict(),
            "file_count": len(self.files),
        }


class Snapshot:
    """
    Immutable text of a tracked file at one version.

    All positions here are 0-indexed. Lines split on "\\n"; a "\\r" before
    it belongs to the terminator. The end-of-line position is addressable.
    """

    __slots__ = ("path", "version", "text", "_line_starts")

    def __init__(self, path: str, version: int, text: str):
        self.path = path
        self.version = version
        self.text = text
        starts = [0]
        index = text.find("\n")
        while index != -1:
            starts.append(index + 1)
            index = text.find("\n", index + 1)
        self._line_starts = starts

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def line_length(self, line: int) -> int:
        """Length of a line's content, terminator excluded."""
        if line < 0 or line >= self.line_count:
            raise PositionOutOfRange(
                f"Line {line} out of range for {self.path} ({self.line_count} lines)"
            )
        start = self._line_starts[line]
        if line + 1 < self.line_count:
            end = self._line_starts[line + 1] - 1
            if end > start and self.text[end - 1] == "\r":
                end -= 1
        else:
            end = len(self.text)
        return end - start

    def line_text(self, line: int) -> str:
        length = self.line_length(line)
        start = self._line_starts[line]
        return self.text[start:start + length]

    def offset_of(self, line: int, character: int) -> int:
        length = self.line_length(line)
        if character < 0 or character > length:
            raise PositionOutOfRange(
                f"Character {character} out of range for line {line} of {self.path} "
                f"(length {length})"
            )
        return self._line_starts[line] + character

    def position_of(self, offset: int) -> tuple[int, int]:
        if offset < 0 or offset > len(self.text):
            raise PositionOutOfRange(
                f"Offset {offset} out of range for {self.path} (size {len(self.text)})"
            )
        line = bisect_right(self._line_starts, offset) - 1
        return line, offset - self._line_starts[line]

    def __repr__(self) -> str:
        return f"Snapshot({self.path!r}, version={self.version}, lines={self.line_count})"


@dataclass(frozen=True)
class DefinitionInfo:
    path: str
    offset: int
    kind: str
    name: str
    container_name: str = ""


@dataclass(frozen=True)
class ReferenceInfo:
    path: str
    offset: int
    is_write: bool = False
    is_definition: bool = False


@dataclass
class OutlineNode:
    """Outline tree node; children keep the engine's order."""
    name: str
    kind: str
    span_start: int
    children: list["OutlineNode"] = field(default_factory=list)
