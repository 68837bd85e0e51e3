"""
Coordinate translation between absolute offsets and 1-indexed positions.

The public boundary speaks 1-indexed (line, character); snapshots and the
analysis engine speak 0-indexed. This module is the only place that converts.
"""

from .errors import PositionOutOfRange


def to_offset(context, path: str, line: int, character: int) -> int:
    """
    1-indexed (line, character) -> absolute offset in the tracked snapshot.

    Raises:
        FileNotTracked: path has no snapshot in context
        PositionOutOfRange: line/character outside the file
    """
    if line < 1 or character < 1:
        raise PositionOutOfRange(
            f"Line and character are 1-indexed, got ({line}, {character})"
        )
    snapshot = context.snapshot(path)
    return snapshot.offset_of(line - 1, character - 1)


def to_line_char(context, path: str, offset: int) -> tuple[int, int]:
    """Absolute offset -> 1-indexed (line, character)."""
    snapshot = context.snapshot(path)
    line, character = snapshot.position_of(offset)
    return line + 1, character + 1
