"""Tests for settings loading."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from headless_indexer.config import SETTINGS_FILENAME, IndexerSettings, load_settings
from headless_indexer.errors import SettingsError


class TestDefaults:
    """Test defaults without file or environment."""

    def test_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path), environ={})
        assert settings == IndexerSettings()
        assert settings.max_watches == 64
        assert settings.chunk_lines == 50
        assert settings.embed_batch_size == 50
        assert settings.collection_name == "codebase_index"
        assert "node_modules" in settings.ignored_dirs


class TestYamlFile:
    """Test the workspace settings file."""

    def test_workspace_file_loaded(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text(
            "max-watches: 3\nuse_polling: true\nsource_extensions: [.py]\n"
        )
        settings = load_settings(str(tmp_path), environ={})
        assert settings.max_watches == 3
        assert settings.use_polling is True
        assert settings.source_extensions == (".py",)

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "custom.yml"
        path.write_text("collection_name: other\n")
        settings = load_settings(config_file=str(path), environ={})
        assert settings.collection_name == "other"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(SettingsError):
            load_settings(config_file=str(tmp_path / "missing.yml"), environ={})

    def test_empty_file(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text("")
        assert load_settings(str(tmp_path), environ={}) == IndexerSettings()

    def test_non_mapping_rejected(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text("- a\n- b\n")
        with pytest.raises(SettingsError):
            load_settings(str(tmp_path), environ={})

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text("max_watches: [unclosed\n")
        with pytest.raises(SettingsError):
            load_settings(str(tmp_path), environ={})

    def test_unknown_key_ignored(self, tmp_path, caplog):
        (tmp_path / SETTINGS_FILENAME).write_text("colour: blue\n")
        assert load_settings(str(tmp_path), environ={}) == IndexerSettings()
        assert "colour" in caplog.text


class TestEnvironment:
    """Test environment overrides."""

    def test_env_wins_over_file(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text("max_watches: 3\n")
        settings = load_settings(str(tmp_path), environ={"HEADLESS_INDEXER_MAX_WATCHES": "7"})
        assert settings.max_watches == 7

    def test_qdrant_env(self, tmp_path):
        settings = load_settings(str(tmp_path), environ={
            "QDRANT_URL": "http://localhost:6333",
            "QDRANT_API_KEY": "secret",
        })
        assert settings.qdrant_url == "http://localhost:6333"
        assert settings.qdrant_api_key == "secret"

    def test_bool_parsing(self, tmp_path):
        assert load_settings(str(tmp_path), environ={"HEADLESS_INDEXER_USE_POLLING": "yes"}).use_polling
        assert not load_settings(str(tmp_path), environ={"HEADLESS_INDEXER_USE_POLLING": "0"}).use_polling

    def test_bad_bool(self, tmp_path):
        with pytest.raises(SettingsError):
            load_settings(str(tmp_path), environ={"HEADLESS_INDEXER_USE_POLLING": "maybe"})

    def test_bad_int(self, tmp_path):
        with pytest.raises(SettingsError):
            load_settings(str(tmp_path), environ={"HEADLESS_INDEXER_MAX_WATCHES": "many"})

    def test_int_must_be_positive(self, tmp_path):
        with pytest.raises(SettingsError):
            load_settings(str(tmp_path), environ={"HEADLESS_INDEXER_DISCOVERY_WORKERS": "0"})
