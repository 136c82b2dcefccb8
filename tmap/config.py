"""
Configuration management for tmap.

Provides a hierarchical configuration system with sensible defaults.
Supports both global (~/.config/tmap/config.toml) and local (tmap.toml) configurations.
"""
import os
import tomli
import tomli_w
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict


PLUGIN_ROOT = "$:/plugins/felixhayashi/tiddlymap"


@dataclass
class TmapConfig:
    """
    tmap configuration with sensible defaults.

    Configuration hierarchy (highest to lowest priority):
    1. Command-line arguments
    2. Environment variables (TMAP_*)
    3. Local config file (./tmap.toml or ./.tmaprc)
    4. User config file (~/.config/tmap/config.toml)
    5. System defaults
    """

    # Database settings
    database: str = field(default="tmap.db")
    database_url: Optional[str] = field(default=None)  # Full connection string (overrides database)
    database_echo: bool = field(default=False)

    # Store layout
    plugin_root: str = field(default=PLUGIN_ROOT)
    views_path: str = field(default=f"{PLUGIN_ROOT}/graph/views")
    edge_types_path: str = field(default=f"{PLUGIN_ROOT}/graph/edgeTypes")
    meta_ref: str = field(default=f"{PLUGIN_ROOT}/misc/meta")

    # Field names
    view_marker_field: str = field(default="isview")
    node_id_field: str = field(default="tmap.id")

    # Views
    live_view_label: str = field(default="Live View")
    default_edge_filter: str = field(default="[all[tiddlers]] -[suffix[/tmap:unknown]]")

    # Advanced
    log_level: str = field(default="INFO")

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "TmapConfig":
        """
        Load configuration from files and environment.

        Args:
            config_file: Specific config file to load (overrides search)

        Returns:
            Merged configuration object
        """
        config = cls()

        user_config_path = Path.home() / ".config" / "tmap" / "config.toml"
        if user_config_path.exists():
            config._merge(cls._load_toml(user_config_path))

        local_paths = [
            Path.cwd() / "tmap.toml",
            Path.cwd() / ".tmaprc",
        ]

        for path in local_paths:
            if path.exists():
                config._merge(cls._load_toml(path))
                break

        if config_file and config_file.exists():
            config._merge(cls._load_toml(config_file))

        config._apply_env_vars()
        config._expand_paths()

        return config

    @staticmethod
    def _load_toml(path: Path) -> Dict[str, Any]:
        """Load TOML configuration file."""
        with open(path, "rb") as f:
            return tomli.load(f)

    def _merge(self, data: Dict[str, Any]):
        """Merge configuration data into this instance."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def _apply_env_vars(self):
        """Apply environment variables with TMAP_ prefix."""
        prefix = "TMAP_"
        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower()
                if hasattr(self, config_key):
                    current_value = getattr(self, config_key)
                    if isinstance(current_value, bool):
                        setattr(self, config_key, value.lower() in ("true", "1", "yes"))
                    else:
                        setattr(self, config_key, value)

    def _expand_paths(self):
        """Expand ~ and environment variables in the database path."""
        if isinstance(self.database, str):
            self.database = os.path.expanduser(os.path.expandvars(self.database))

    def save(self, path: Optional[Path] = None):
        """
        Save current configuration to TOML file.

        Args:
            path: Path to save to (defaults to user config)
        """
        if path is None:
            path = Path.home() / ".config" / "tmap" / "config.toml"

        path.parent.mkdir(parents=True, exist_ok=True)

        # TOML has no null, unset options are left out
        data = {k: v for k, v in asdict(self).items() if v is not None}
        with open(path, "wb") as f:
            tomli_w.dump(data, f)

    def get_database_path(self) -> Path:
        """Get the resolved database path."""
        path = Path(self.database)
        if not path.is_absolute():
            path = Path.cwd() / path
        return path

    def get_database_url(self) -> str:
        """
        Get SQLAlchemy database URL.

        Examples:
            sqlite:///tmap.db
            sqlite://            (in-memory)
        """
        if self.database_url:
            return self.database_url

        db_path = self.get_database_path()
        return f"sqlite:///{db_path}"

    def is_sqlite(self) -> bool:
        """Check if database is SQLite."""
        return self.get_database_url().startswith("sqlite:")


# Global configuration instance
_config: Optional[TmapConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> TmapConfig:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from files
        config_file: Specific config file to load

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None or reload:
        _config = TmapConfig.load(config_file)
    return _config


def init_config(database: Optional[str] = None, **kwargs) -> TmapConfig:
    """
    Initialize configuration with command-line overrides.

    Args:
        database: Database path override
        **kwargs: Other configuration overrides

    Returns:
        Configured instance
    """
    config = get_config()

    if database:
        config.database = database

    for key, value in kwargs.items():
        if hasattr(config, key) and value is not None:
            setattr(config, key, value)

    return config
