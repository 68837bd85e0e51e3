"""Tests for project loading and the analysis context pool."""

import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from headless_indexer.config import IndexerSettings
from headless_indexer.errors import ConfigParseError, FileNotTracked
from headless_indexer.pool import AnalysisContext, ContextPool, load_project

from fakes import FakeEngine, fake_engine_factory, real, write_project


class TestLoadProject:
    """Test config parsing and file enumeration."""

    def test_defaults(self, tmp_path):
        write_project(tmp_path, {"b.py": "", "a.py": "", "pkg/c.py": "", "readme.md": ""})
        project = load_project(str(tmp_path / "pyproject.toml"))
        assert project.root == real(tmp_path)
        assert project.files == sorted([
            real(tmp_path / "a.py"),
            real(tmp_path / "b.py"),
            real(tmp_path / "pkg" / "c.py"),
        ])
        assert project.options.extensions == (".py", ".pyi")

    def test_options_table(self, tmp_path):
        write_project(tmp_path, {"a.py": "", "gen/x.py": "", "s.pyx": ""}, config=(
            "[tool.headless-indexer]\n"
            "extensions = [\"py\", \".pyx\"]\n"
            "exclude = [\"gen/*\"]\n"
            "extra-paths = [\"../shared\"]\n"
            "environment = \"/usr/bin/python3\"\n"
        ))
        project = load_project(str(tmp_path / "pyproject.toml"))
        assert project.options.extensions == (".py", ".pyx")
        assert project.options.exclude == ("gen/*",)
        assert project.options.extra_paths == (real(tmp_path.parent / "shared"),)
        assert project.options.environment == "/usr/bin/python3"
        assert project.files == sorted([real(tmp_path / "a.py"), real(tmp_path / "s.pyx")])

    def test_invalid_toml(self, tmp_path):
        write_project(tmp_path, {}, config="[project\nname = ")
        with pytest.raises(ConfigParseError):
            load_project(str(tmp_path / "pyproject.toml"))

    def test_mistyped_option(self, tmp_path):
        write_project(tmp_path, {}, config="[tool.headless-indexer]\nexclude = \"tests\"\n")
        with pytest.raises(ConfigParseError):
            load_project(str(tmp_path / "pyproject.toml"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigParseError):
            load_project(str(tmp_path / "pyproject.toml"))


class TestAnalysisContext:
    """Test versions and snapshots."""

    @pytest.fixture
    def context(self, tmp_path):
        write_project(tmp_path, {"a.py": "x = 1\n"})
        return AnalysisContext(load_project(str(tmp_path / "pyproject.toml")), fake_engine_factory)

    def test_initial_version_zero(self, context, tmp_path):
        assert context.version(str(tmp_path / "a.py")) == 0
        assert context.has_file(str(tmp_path / "a.py"), 0)

    def test_bump_increments(self, context, tmp_path):
        path = str(tmp_path / "a.py")
        assert context.bump_version(path) == 1
        assert context.bump_version(path) == 2
        assert context.version(path) == 2

    def test_bump_new_file_starts_at_zero(self, context, tmp_path):
        path = tmp_path / "b.py"
        path.write_text("")
        assert context.bump_version(str(path)) == 0
        assert real(path) in context.file_names()
        assert real(path) in context.project.files

    def test_remove_then_recreate_keeps_counting(self, context, tmp_path):
        path = str(tmp_path / "a.py")
        context.bump_version(path)
        assert context.remove_file(path)
        assert not context.has_file(path)
        with pytest.raises(FileNotTracked):
            context.version(path)
        assert context.bump_version(path) == 2

    def test_remove_unknown(self, context, tmp_path):
        assert not context.remove_file(str(tmp_path / "nope.py"))

    def test_remove_tree(self, context, tmp_path):
        for rel in ("pkg/a.py", "pkg/sub/b.py", "pkgx.py"):
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")
            context.bump_version(str(path))
        removed = context.remove_tree(str(tmp_path / "pkg"))
        assert sorted(removed) == sorted([real(tmp_path / "pkg" / "a.py"), real(tmp_path / "pkg" / "sub" / "b.py")])
        assert context.has_file(str(tmp_path / "pkgx.py"))

    def test_engine_notified(self, context, tmp_path):
        path = str(tmp_path / "a.py")
        context.bump_version(path)
        context.remove_file(path)
        assert context.engine.changes == [(real(path), 1), (real(path), -1)]

    def test_snapshot_cached_per_version(self, context, tmp_path):
        path = tmp_path / "a.py"
        first = context.snapshot(str(path))
        assert first.text == "x = 1\n"
        path.write_text("x = 2\n")
        # no bump yet: cached text is served
        assert context.snapshot(str(path)) is first
        context.bump_version(str(path))
        second = context.snapshot(str(path))
        assert second.text == "x = 2\n"
        assert second.version == 1

    def test_snapshot_untracked(self, context, tmp_path):
        with pytest.raises(FileNotTracked):
            context.snapshot(str(tmp_path / "missing.py"))

    def test_snapshot_unreadable(self, context, tmp_path):
        (tmp_path / "a.py").unlink()
        with pytest.raises(FileNotTracked):
            context.snapshot(str(tmp_path / "a.py"))

    def test_to_dict(self, context, tmp_path):
        info = context.to_dict()
        assert info["root"] == real(tmp_path)
        assert info["file_count"] == 1
        assert info["watched"] is False

    def test_concurrent_bumps_serialize(self, context, tmp_path):
        path = str(tmp_path / "a.py")
        threads = [threading.Thread(target=lambda: [context.bump_version(path) for _ in range(50)]) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert context.version(path) == 200


class TestContextPool:
    """Test pool population and the root index."""

    def test_populate_keeps_order_and_skips_bad(self, tmp_path):
        write_project(tmp_path / "a", {"x.py": ""})
        write_project(tmp_path / "b", {}, config="not toml [")
        write_project(tmp_path / "c", {"y.py": ""})
        pool = ContextPool(IndexerSettings(), fake_engine_factory)
        contexts = pool.populate([
            str(tmp_path / "a" / "pyproject.toml"),
            str(tmp_path / "b" / "pyproject.toml"),
            str(tmp_path / "c" / "pyproject.toml"),
        ])
        assert [c.root for c in contexts] == [real(tmp_path / "a"), real(tmp_path / "c")]
        assert len(pool) == 2

    def test_populate_empty(self):
        assert ContextPool(IndexerSettings(), fake_engine_factory).populate([]) == []

    def test_engine_failure_skips_project(self, tmp_path):
        write_project(tmp_path / "a", {})

        def broken(project, snapshots):
            raise RuntimeError("no interpreter")

        pool = ContextPool(IndexerSettings(), broken)
        assert pool.populate([str(tmp_path / "a" / "pyproject.toml")]) == []

    def test_root_index_longest_first(self, tmp_path):
        write_project(tmp_path, {})
        write_project(tmp_path / "packages" / "inner", {})
        pool = ContextPool(IndexerSettings(), fake_engine_factory)
        pool.populate([
            str(tmp_path / "pyproject.toml"),
            str(tmp_path / "packages" / "inner" / "pyproject.toml"),
        ])
        assert pool.root_index() == (real(tmp_path / "packages" / "inner"), real(tmp_path))

    def test_duplicate_root_keeps_first(self, tmp_path):
        write_project(tmp_path, {})
        pool = ContextPool(IndexerSettings(), fake_engine_factory)
        first = pool.create_context(str(tmp_path / "pyproject.toml"))
        second = pool.create_context(str(tmp_path / "pyproject.toml"))
        assert first is second
        assert len(pool) == 1

    def test_get_normalizes(self, tmp_path):
        write_project(tmp_path, {})
        pool = ContextPool(IndexerSettings(), fake_engine_factory)
        context = pool.create_context(str(tmp_path / "pyproject.toml"))
        assert pool.get(str(tmp_path) + "/") is context
        assert isinstance(context.engine, FakeEngine)
