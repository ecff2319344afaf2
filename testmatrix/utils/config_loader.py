"""Configuration loader for workbook locations and matrix defaults."""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, List

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "TESTMATRIX_DATA_DIR"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "data_dir": "data",
    "workbooks": {
        "test_cases": "test_cases.xlsx",
        "test_status": "test_status.xlsx",
        "cell_types": "cell_types.xlsx",
        "site_info": "site_info.xlsx",
    },
    "propagation": {
        "default_phases": ["Phase 1", "Phase 2", "Phase 3"],
        "default_cell_count": 1,
    },
    "logging": {
        "log_dir": "outputs/logs",
        "level": "INFO",
    },
}


class ConfigLoader:
    """Load and manage settings from a YAML file."""

    def __init__(self, config_dir: str = None):
        """
        Initialize config loader.

        Args:
            config_dir: Directory containing config files (defaults to project config/)
        """
        if config_dir is None:
            project_root = Path(__file__).parent.parent.parent
            config_dir = project_root / "config"

        self.config_dir = Path(config_dir)
        self._settings = None

    def load_settings(self, config_file: str = "settings.yaml") -> Dict[str, Any]:
        """
        Load settings, layered over the built-in defaults.

        A missing settings file is not an error; the defaults apply.

        Raises:
            ConfigurationError: If the file exists but is not valid YAML
        """
        if self._settings is not None:
            return self._settings

        env_path = self.config_dir / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        config_path = self.config_dir / config_file
        loaded: Dict[str, Any] = {}

        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Failed to parse YAML config: {e}")
            except OSError as e:
                raise ConfigurationError(f"Failed to load config: {e}")

            if not isinstance(loaded, dict):
                raise ConfigurationError(f"Settings file must hold a mapping: {config_path}")
            logger.info(f"Loaded settings from: {config_path}")
        else:
            logger.debug(f"No settings file at {config_path}, using defaults")

        self._settings = _merge(DEFAULT_SETTINGS, loaded)
        return self._settings

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting by dotted key, e.g. ``propagation.default_phases``.
        """
        node: Any = self.load_settings()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    @property
    def data_dir(self) -> Path:
        """Workbook directory; the environment variable wins over the file."""
        self.load_settings()
        override = os.getenv(DATA_DIR_ENV)
        if override:
            return Path(override)

        data_dir = Path(self.get("data_dir", "data"))
        if not data_dir.is_absolute():
            data_dir = self.config_dir.parent / data_dir
        return data_dir

    def workbook_path(self, name: str) -> Path:
        filename = self.get(f"workbooks.{name}")
        if not filename:
            raise ConfigurationError(f"Workbook '{name}' not configured")
        return self.data_dir / filename

    @property
    def default_phases(self) -> List[str]:
        phases = self.get("propagation.default_phases") or []
        if not isinstance(phases, list) or not all(isinstance(p, str) for p in phases):
            raise ConfigurationError("propagation.default_phases must be a list of strings")
        return phases

    @property
    def default_cell_count(self) -> int:
        count = self.get("propagation.default_cell_count", 1)
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            raise ConfigurationError("propagation.default_cell_count must be a positive integer")
        return count

    def reload(self):
        """Reload configuration from files."""
        self._settings = None
        logger.info("Configuration reloaded")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# Global config loader instance
_config_loader = None


def get_config_loader(config_dir: str = None) -> ConfigLoader:
    """
    Get global config loader instance.

    Passing ``config_dir`` replaces the cached instance.
    """
    global _config_loader

    if _config_loader is None or config_dir is not None:
        _config_loader = ConfigLoader(config_dir)

    return _config_loader

