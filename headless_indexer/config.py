"""
Indexer settings.

Merge order (later wins):
1. defaults below
2. YAML file (.headless-indexer.yml in the workspace, or an explicit path)
3. environment variables
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .discovery import DEFAULT_CONFIG_NAMES, DEFAULT_IGNORED_DIRS
from .errors import SettingsError
from .models import DEFAULT_EXTENSIONS

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = ".headless-indexer.yml"
DEFAULT_CACHE_DIR = Path.home() / ".headless-indexer" / "embedding_cache"
DEFAULT_QDRANT_PATH = Path.home() / ".headless-indexer" / "qdrant"

# env var -> settings field
ENV_OVERRIDES = {
    "HEADLESS_INDEXER_MAX_WATCHES": "max_watches",
    "HEADLESS_INDEXER_USE_POLLING": "use_polling",
    "HEADLESS_INDEXER_DISCOVERY_WORKERS": "discovery_workers",
    "HEADLESS_INDEXER_LOG_LEVEL": "log_level",
    "HEADLESS_INDEXER_COLLECTION": "collection_name",
    "HEADLESS_INDEXER_EMBED_CACHE": "embedding_cache_dir",
    "QDRANT_URL": "qdrant_url",
    "QDRANT_API_KEY": "qdrant_api_key",
    "QDRANT_PATH": "qdrant_path",
}


@dataclass(frozen=True)
class IndexerSettings:
    config_names: tuple[str, ...] = DEFAULT_CONFIG_NAMES
    ignored_dirs: frozenset = DEFAULT_IGNORED_DIRS
    source_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS

    # watching
    max_watches: int = 64
    use_polling: bool = False

    # startup
    discovery_workers: int = 4

    # semantic search
    chunk_lines: int = 50
    embed_batch_size: int = 50
    collection_name: str = "codebase_index"
    qdrant_url: Optional[str] = None
    qdrant_api_key: Optional[str] = None
    # ":memory:" keeps the collection in-process only
    qdrant_path: Optional[str] = str(DEFAULT_QDRANT_PATH)
    embedding_cache_dir: Optional[str] = str(DEFAULT_CACHE_DIR)

    log_level: str = "INFO"


def _coerce(name: str, value: Any, current: Any) -> Any:
    """Coerce a YAML/env value to the type of the field's default."""
    if value is None:
        return None
    try:
        if isinstance(current, bool):
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off", ""):
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if isinstance(current, int):
            number = int(value)
            if number < 1:
                raise ValueError(f"must be >= 1, got {number}")
            return number
        if isinstance(current, frozenset):
            return frozenset(_as_list(value))
        if isinstance(current, tuple):
            return tuple(_as_list(value))
        return str(value)
    except (TypeError, ValueError) as e:
        raise SettingsError(f"Invalid value for {name}: {e}") from e


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item) for item in value]
    raise ValueError(f"expected a list, got {type(value).__name__}")


def _apply(settings: IndexerSettings, values: Mapping[str, Any], source: str) -> IndexerSettings:
    known = {f.name for f in fields(IndexerSettings)}
    updates = {}
    for key, value in values.items():
        name = key.replace("-", "_")
        if name not in known:
            logger.warning(f"Unknown setting '{key}' in {source}, ignored")
            continue
        updates[name] = _coerce(name, value, getattr(settings, name))
    return replace(settings, **updates)


def load_yaml_settings(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise SettingsError(f"Cannot read settings file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(
    workspace_root: Optional[str] = None,
    config_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> IndexerSettings:
    """Build settings from defaults, the YAML file and the environment."""
    settings = IndexerSettings()

    if config_file:
        path = Path(config_file).expanduser()
        if not path.exists():
            raise SettingsError(f"Settings file not found: {path}")
        settings = _apply(settings, load_yaml_settings(path), str(path))
    elif workspace_root:
        path = Path(workspace_root) / SETTINGS_FILENAME
        if path.is_file():
            settings = _apply(settings, load_yaml_settings(path), str(path))

    env = os.environ if environ is None else environ
    env_values = {field_name: env[var] for var, field_name in ENV_OVERRIDES.items() if var in env}
    if env_values:
        settings = _apply(settings, env_values, "environment")

    return settings
