r"""
Settings Management for AgentCanvas.

Uses platformdirs to store user settings in OS-standard locations.
Holds the orchestration server address, stream reconnect policy, canvas
tuning values and UI preferences.

Storage Locations (via platformdirs):
- Windows: %LOCALAPPDATA%\AgentCanvas\AgentCanvas\config.json
- Linux: ~/.config/AgentCanvas/config.json
- macOS: ~/Library/Application Support/AgentCanvas/config.json

Environment overrides (read after .env is loaded):
- AGENTCANVAS_BASE_URL: orchestration server base URL
- AGENTCANVAS_WORKSPACE_ID: workspace opened at startup
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)


ENV_BASE_URL = "AGENTCANVAS_BASE_URL"
ENV_WORKSPACE_ID = "AGENTCANVAS_WORKSPACE_ID"


class SettingsManager:
    """
    Manages user settings in the OS-standard config directory.

    Settings are stored as JSON with one dict per section; unknown
    sections in the file are ignored and missing keys fall back to
    DEFAULT_SETTINGS.
    """

    APP_NAME = "AgentCanvas"
    APP_AUTHOR = "AgentCanvas"
    CONFIG_FILE_NAME = "config.json"

    DEFAULT_SETTINGS = {
        "server": {
            "base_url": "http://localhost:8080",
            "request_timeout": 30.0,
        },
        "stream": {
            "reconnect_delay": 5.0,
        },
        "canvas": {
            "animation_fps": 30,
            "snap_radius": 80.0,
            "port_radius": 14.0,
        },
        "preferences": {
            "theme": "dark",
            "layout_store": "remote",
            "workspace_id": "",
        },
    }

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize SettingsManager.

        Args:
            config_dir: Override for the config directory (tests); defaults
                to the platformdirs user config dir.
        """
        if config_dir is None:
            config_dir = Path(user_config_dir(self.APP_NAME, self.APP_AUTHOR))
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / self.CONFIG_FILE_NAME

        self.config_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Settings config directory: {self.config_dir}")

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from config file.

        Returns:
            Dict with settings (defaults if the file is missing or unreadable).
        """
        if not self.config_file.exists():
            logger.info("Config file not found, using defaults")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        try:
            with self.config_file.open("r", encoding="utf-8") as f:
                settings = json.load(f)
            return self._merge_with_defaults(settings)

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            logger.warning("Using default settings")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        except OSError as e:
            logger.error(f"Failed to load settings: {e}")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        """
        Save settings to config file (atomic temp-file replace).

        Args:
            settings: Settings dict to save.

        Returns:
            True if save succeeded, False otherwise.
        """
        try:
            validated = self._merge_with_defaults(settings)

            temp_file = self.config_file.with_suffix(".tmp")
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(validated, f, indent=2)
            temp_file.replace(self.config_file)

            logger.info("Settings saved successfully")
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Read one value from a settings section."""
        return self.load_settings().get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any) -> bool:
        """Write one value into a settings section."""
        settings = self.load_settings()
        settings.setdefault(section, {})[key] = value
        return self.save_settings(settings)

    # ========================================================================
    # TYPED ACCESSORS
    # ========================================================================

    def get_base_url(self) -> str:
        """Server base URL; the environment overrides the config file."""
        return os.environ.get(ENV_BASE_URL) or self.get(
            "server", "base_url", self.DEFAULT_SETTINGS["server"]["base_url"]
        )

    def get_workspace_id(self) -> str:
        return os.environ.get(ENV_WORKSPACE_ID) or self.get("preferences", "workspace_id", "")

    def get_request_timeout(self) -> float:
        return float(self.get("server", "request_timeout", 30.0))

    def get_reconnect_delay(self) -> float:
        return float(self.get("stream", "reconnect_delay", 5.0))

    def get_preference(self, key: str, default: Any = None) -> Any:
        return self.get("preferences", key, default)

    def set_preference(self, key: str, value: Any) -> bool:
        return self.set("preferences", key, value)

    def _merge_with_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge user settings over defaults, section by section.

        Args:
            settings: User settings dict (potentially incomplete).

        Returns:
            Complete settings dict with defaults filled in.
        """
        merged = copy.deepcopy(self.DEFAULT_SETTINGS)

        for section in merged:
            value = settings.get(section)
            if isinstance(value, dict):
                merged[section].update(value)

        return merged

    def reset_to_defaults(self) -> bool:
        logger.warning("Resetting settings to defaults")
        return self.save_settings(copy.deepcopy(self.DEFAULT_SETTINGS))

    def get_config_file_path(self) -> Path:
        return self.config_file


# Singleton instance for global access
_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """
    Get singleton SettingsManager instance.

    Returns:
        Global SettingsManager instance.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


def reset_settings_manager() -> None:
    """Drop the singleton (tests only)."""
    global _settings_manager
    _settings_manager = None


__all__ = ["SettingsManager", "get_settings_manager", "reset_settings_manager"]
