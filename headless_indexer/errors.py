"""
Error taxonomy for the structural indexer.

Core components raise these; the tool layer turns them into
{"ok": False, "error": {...}} payloads.
"""


class IndexerError(Exception):
    """Base class for every error the indexer reports to its caller."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    @property
    def error_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"type": self.error_type, "message": self.message}


class ConfigParseError(IndexerError):
    """A project's configuration file is unreadable or malformed."""

    def __init__(self, config_path: str, reason: str):
        super().__init__(f"Cannot parse project config {config_path}: {reason}")
        self.config_path = config_path
        self.reason = reason


class ProjectNotFound(IndexerError):
    """The path is not inside any known project root."""

    def __init__(self, path: str):
        super().__init__(f"File is not inside any known project: {path}")
        self.path = path


class FileNotTracked(IndexerError):
    """The path is inside a project but has no tracked snapshot."""

    def __init__(self, path: str, project_root: str = ""):
        where = f" (project {project_root})" if project_root else ""
        super().__init__(f"File is not tracked{where}: {path}")
        self.path = path
        self.project_root = project_root


class PositionOutOfRange(IndexerError):
    """A line/character or offset lies outside the file's bounds."""


class WatchSetupFailure(IndexerError):
    """A project could not be watched; it keeps its startup file set."""

    def __init__(self, root: str, reason: str):
        super().__init__(f"Cannot watch {root}: {reason}")
        self.root = root
        self.reason = reason


class EngineQueryFailure(IndexerError):
    """The analysis engine raised while answering a query."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"{operation} failed: {reason}")
        self.operation = operation
        self.reason = reason


class SettingsError(IndexerError):
    """Invalid indexer settings (YAML file or environment)."""


class EmbeddingError(IndexerError):
    """The embedding provider could not produce vectors."""


class InvalidArgument(IndexerError):
    """A tool was called with missing or mistyped arguments."""


class StoreError(IndexerError):
    """The vector store rejected a read or write."""
