"""
PdfEbook - Configuration Manager

This module provides centralized JSON-based settings management.
Stored settings supply the defaults for conversion options; explicit
command-line flags always take precedence over them.
"""

import copy
import json
import os
from typing import Any, Final

from pdfebook.config import SETTINGS_FILE_PATH
from pdfebook.utils.logger import logger

# Default configuration values
DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "version": 1,
    "conversion": {
        "image_quality": 85,
        "image_max_width": 1200,
        "compression_level": "balanced",
        "grayscale": False,
        "preserve_annotations": True,
        "include_metadata": True,
        "enable_ocr": False,
        "ocr_languages": ["eng"],
        "auto_detect_scanned": True,
        "output_format": "epub",
        "optimize_for_sync": False,
        "sync_target_size": "auto",
        "memory_profile": "balanced",
        "optimize_for_device": True,
        "max_file_size_mb": 650,
    },
}


class ConfigManager:
    """Manages application settings in JSON format.

    Missing keys in a stored file are filled from DEFAULT_CONFIG on load,
    so older settings files keep working after new options are added.
    """

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to the settings file.
                        Defaults to SETTINGS_FILE_PATH.
        """
        self.config_path = config_path or SETTINGS_FILE_PATH
        self._config: dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file or fall back to defaults."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        if not os.path.exists(self.config_path):
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading settings: {e}")
            return

        if not isinstance(stored, dict):
            logger.error(f"Ignoring malformed settings file: {self.config_path}")
            return

        self._merge(self._config, stored)
        logger.info("Settings loaded from JSON")

    def _merge(self, config: dict, stored: dict) -> None:
        """Overlay stored values onto the defaults, section by section."""
        for key, value in stored.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                self._merge(config[key], value)
            else:
                config[key] = value

    def save(self) -> bool:
        """Save configuration to file.

        Returns:
            True if save was successful, False otherwise.
        """
        try:
            os.makedirs(os.path.dirname(self.config_path) or ".", exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)
            logger.debug("Settings saved to JSON")
            return True
        except OSError as e:
            logger.error(f"Error saving settings: {e}")
            return False

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated path (e.g. "conversion.image_quality")."""
        value = self._config
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any, save_immediately: bool = True) -> None:
        """Set a configuration value by dot-separated path."""
        keys = key_path.split(".")
        config = self._config

        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

        if save_immediately:
            self.save()

    def conversion_defaults(self) -> dict[str, Any]:
        """Return a copy of the stored conversion options."""
        return copy.deepcopy(self._config.get("conversion", {}))
