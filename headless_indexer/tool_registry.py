"""
Tool Registry - single source of truth for tool names, schemas and dispatch.

Used by:
  - cli.py: command dispatch
  - any agent loop that speaks OpenAI function calling

Every call returns {"ok": True, "result": ...} or
{"ok": False, "error": {"type": ..., "message": ...}}.
"""

import logging
import os
from typing import Any, Dict, Optional, Set

from .engine import StructuralIndexer
from .errors import IndexerError, InvalidArgument, SettingsError
from .semantic import SemanticIndexer

logger = logging.getLogger(__name__)

TOOL_NAMES: Set[str] = {
    "get_definition",
    "get_references",
    "get_file_structure",
    "semantic_search",
    "index_codebase",
    "list_projects",
}

_POSITION_PARAMS = {
    "type": "object",
    "properties": {
        "file_path": {"type": "string", "description": "Absolute path to the source file"},
        "line": {"type": "integer", "description": "1-indexed line number of the symbol"},
        "character": {"type": "integer", "description": "1-indexed character position on the line"},
    },
    "required": ["file_path", "line", "character"],
}


def get_tool_schemas() -> list:
    """Return tool definitions in OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": "get_definition",
                "description": (
                    "Get the location where a symbol is defined, using project-aware static analysis. "
                    "Chain with: get_references (who uses it), get_file_structure (what else is there)."
                ),
                "parameters": _POSITION_PARAMS,
            },
        },
        {
            "type": "function",
            "function": {
                "name": "get_references",
                "description": (
                    "Find all usages of a symbol across the project that owns the file. "
                    "MUST call before renaming or changing the signature of a public function."
                ),
                "parameters": _POSITION_PARAMS,
            },
        },
        {
            "type": "function",
            "function": {
                "name": "get_file_structure",
                "description": (
                    "Get the outline of a file: classes, functions and constants with their members. "
                    "Positions in the result feed straight into get_definition and get_references."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "file_path": {"type": "string", "description": "Absolute path to the source file"},
                    },
                    "required": ["file_path"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "semantic_search",
                "description": (
                    "Search the codebase for code snippets by meaning or natural language description. "
                    "Returns ranked chunks with source path. If results are empty, call index_codebase first."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "What the code you are looking for does"},
                        "limit": {"type": "integer", "description": "Number of results. Default: 5"},
                    },
                    "required": ["query"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "index_codebase",
                "description": (
                    "Index a directory for semantic search in the background. "
                    "Do this if semantic_search returns empty or missing results."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "dir_path": {"type": "string", "description": "Directory to index. Default: the workspace root"},
                    },
                    "required": [],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "list_projects",
                "description": "List discovered projects with their file counts and watch state.",
                "parameters": {"type": "object", "properties": {}, "required": []},
            },
        },
    ]


# =============================================================================
# Argument helpers
# =============================================================================

def _require_str(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidArgument(f"'{key}' must be a non-empty string")
    return value


def _require_int(args: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    value = args.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"'{key}' must be an integer")
    return value


def _require_semantic(semantic: Optional[SemanticIndexer]) -> SemanticIndexer:
    if semantic is None:
        raise SettingsError("semantic search is not configured")
    return semantic


def _index_codebase(indexer: StructuralIndexer, semantic: Optional[SemanticIndexer], args: Dict[str, Any]) -> dict:
    semantic = _require_semantic(semantic)
    directory = args.get("dir_path") or indexer.workspace_root
    if not isinstance(directory, str):
        raise InvalidArgument("'dir_path' must be a string")
    if not os.path.isdir(directory):
        raise InvalidArgument(f"Not a directory: {directory}")
    if semantic.is_indexing:
        return {"status": "already_running", "directory": directory}
    semantic.start_background_index(directory)
    return {
        "status": "started",
        "directory": directory,
        "message": f"Started background indexing of {directory}.",
    }


def _semantic_search(semantic: Optional[SemanticIndexer], args: Dict[str, Any]) -> list:
    semantic = _require_semantic(semantic)
    query = _require_str(args, "query")
    limit = _require_int(args, "limit", 5)
    if limit < 1:
        raise InvalidArgument("'limit' must be at least 1")
    return semantic.search(query, limit)


def _structural(indexer: StructuralIndexer) -> StructuralIndexer:
    indexer.initialize()
    return indexer


def execute_tool(
    name: str,
    arguments: Dict[str, Any],
    indexer: StructuralIndexer,
    semantic: Optional[SemanticIndexer] = None,
) -> dict:
    """
    Execute a tool by name.

    Raises:
        KeyError: If tool name is unknown.
    """
    _DISPATCH = {
        "get_definition": lambda args: _structural(indexer).get_definition(
            _require_str(args, "file_path"),
            _require_int(args, "line"),
            _require_int(args, "character"),
        ),
        "get_references": lambda args: _structural(indexer).get_references(
            _require_str(args, "file_path"),
            _require_int(args, "line"),
            _require_int(args, "character"),
        ),
        "get_file_structure": lambda args: _structural(indexer).get_file_structure(
            _require_str(args, "file_path"),
        ),
        "list_projects": lambda args: _structural(indexer).list_projects(),
        "semantic_search": lambda args: _semantic_search(semantic, args),
        "index_codebase": lambda args: _index_codebase(indexer, semantic, args),
    }

    handler = _DISPATCH.get(name)
    if handler is None:
        raise KeyError(f"Unknown tool: {name}")

    try:
        return {"ok": True, "result": handler(arguments or {})}
    except IndexerError as e:
        logger.debug(f"{name} failed: {e}")
        return {"ok": False, "error": e.to_dict()}
    except Exception as e:
        logger.exception(f"Unexpected error in {name}")
        return {"ok": False, "error": {"type": "InternalError", "message": str(e)}}
