"""
Tests for tmap/config.py configuration management.

Tests the hierarchical configuration system with sensible defaults,
including file loading, environment variables, and saving.
"""
import os
import pytest
import tomli

from tmap import config as config_module
from tmap.config import PLUGIN_ROOT, TmapConfig, get_config, init_config


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run in an empty directory with an empty home and no TMAP_ variables."""
    for key in list(os.environ.keys()):
        if key.startswith("TMAP_"):
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "_config", None)
    return tmp_path


class TestTmapConfigDefaults:
    """Test default configuration values."""

    def test_default_database(self):
        assert TmapConfig().database == "tmap.db"
        assert TmapConfig().database_url is None

    def test_store_layout(self):
        config = TmapConfig()
        assert config.views_path == f"{PLUGIN_ROOT}/graph/views"
        assert config.edge_types_path == f"{PLUGIN_ROOT}/graph/edgeTypes"
        assert config.meta_ref == f"{PLUGIN_ROOT}/misc/meta"

    def test_view_defaults(self):
        config = TmapConfig()
        assert config.live_view_label == "Live View"
        assert config.view_marker_field == "isview"
        assert config.node_id_field == "tmap.id"
        assert "tmap:unknown" in config.default_edge_filter


class TestConfigLoading:
    """Test configuration loading from files."""

    def test_defaults_without_files(self, isolated):
        config = TmapConfig.load()
        assert config.database == "tmap.db"
        assert config.log_level == "INFO"

    def test_load_from_local_toml(self, isolated):
        (isolated / "tmap.toml").write_text('database = "local.db"\nlive_view_label = "Focus"\n')
        config = TmapConfig.load()
        assert config.database == "local.db"
        assert config.live_view_label == "Focus"

    def test_load_from_tmaprc(self, isolated):
        (isolated / ".tmaprc").write_text('database = "rc.db"\n')
        assert TmapConfig.load().database == "rc.db"

    def test_local_config_overrides_user_config(self, isolated):
        user_dir = isolated / "home" / ".config" / "tmap"
        user_dir.mkdir(parents=True)
        (user_dir / "config.toml").write_text('database = "user.db"\nlog_level = "DEBUG"\n')
        (isolated / "tmap.toml").write_text('database = "local.db"\n')

        config = TmapConfig.load()
        assert config.database == "local.db"
        assert config.log_level == "DEBUG"

    def test_explicit_config_file_overrides_all(self, isolated):
        (isolated / "tmap.toml").write_text('database = "local.db"\n')
        explicit = isolated / "explicit.toml"
        explicit.write_text('database = "explicit.db"\n')
        assert TmapConfig.load(config_file=explicit).database == "explicit.db"

    def test_unknown_keys_are_ignored(self, isolated):
        (isolated / "tmap.toml").write_text('no_such_option = 1\n')
        config = TmapConfig.load()
        assert not hasattr(config, "no_such_option")


class TestEnvironmentVariables:
    """Test TMAP_* overrides."""

    def test_string_override(self, isolated, monkeypatch):
        (isolated / "tmap.toml").write_text('database = "local.db"\n')
        monkeypatch.setenv("TMAP_DATABASE", "env.db")
        assert TmapConfig.load().database == "env.db"

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("no", False)])
    def test_boolean_override(self, isolated, monkeypatch, value, expected):
        monkeypatch.setenv("TMAP_DATABASE_ECHO", value)
        assert TmapConfig.load().database_echo is expected

    def test_database_path_expansion(self, isolated, monkeypatch):
        monkeypatch.setenv("TMAP_DATABASE", "~/wiki.db")
        config = TmapConfig.load()
        assert config.database == str(isolated / "home" / "wiki.db")


class TestDatabaseUrl:
    """Test database path and URL resolution."""

    def test_relative_path_resolves_against_cwd(self, isolated):
        config = TmapConfig()
        assert config.get_database_path() == isolated / "tmap.db"
        assert config.get_database_url() == f"sqlite:///{isolated / 'tmap.db'}"
        assert config.is_sqlite()

    def test_url_overrides_path(self):
        config = TmapConfig(database_url="postgresql://localhost/wiki")
        assert config.get_database_url() == "postgresql://localhost/wiki"
        assert not config.is_sqlite()


class TestSave:
    """Test writing configuration back to TOML."""

    def test_save_round_trips_through_load(self, isolated):
        path = isolated / "saved.toml"
        config = TmapConfig(database="saved.db", live_view_label="Focus")
        config.save(path)

        with open(path, "rb") as f:
            data = tomli.load(f)
        assert data["database"] == "saved.db"
        assert "database_url" not in data

        assert TmapConfig.load(config_file=path).live_view_label == "Focus"

    def test_save_defaults_to_user_config(self, isolated):
        TmapConfig().save()
        assert (isolated / "home" / ".config" / "tmap" / "config.toml").exists()


class TestGlobalConfig:
    """Test the global configuration instance."""

    def test_get_config_is_cached(self, isolated):
        assert get_config() is get_config()

    def test_reload(self, isolated):
        first = get_config()
        assert get_config(reload=True) is not first

    def test_init_config_overrides(self, isolated):
        config = init_config(database="cli.db", log_level="DEBUG", live_view_label=None)
        assert config.database == "cli.db"
        assert config.log_level == "DEBUG"
        assert config.live_view_label == "Live View"
        assert get_config() is config
