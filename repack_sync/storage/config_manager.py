"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from repack_sync.exceptions import ConfigurationError
from repack_sync.models.config import SyncConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> SyncConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated SyncConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'repack-sync init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        try:
            config_from_file = self.get_config_as_dict()
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return SyncConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save.
        """
        config = configparser.ConfigParser(interpolation=None)
        self._fill_missing_keys(config["DEFAULT"], settings)
        try:
            self._write(config)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def read_settings(self) -> dict[str, Any]:
        """Reads the INI file as-is, without migration or validation."""
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
            return self.get_config_as_dict()
        except (configparser.Error, ValueError) as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

    def get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        config = {
            "catalog_url": section.get("catalog_url", ""),
            "title_hash_url": section.get("title_hash_url", ""),
            "request_timeout": section.getint("request_timeout", 30),
            "max_retries": section.getint("max_retries", 3),
            "cache_max_age_days": section.getint("cache_max_age_days", 1),
        }
        # Only an explicit setting overrides the default location
        if database_path := section.get("database_path", ""):
            config["database_path"] = database_path
        return config

    @staticmethod
    def _fill_missing_keys(
        section: configparser.SectionProxy, settings: dict[str, Any] | None = None
    ) -> list[str]:
        """Sets every absent INI key from `settings` or the defaults."""
        defaults = SyncConfig.model_construct()
        settings = settings or {}
        added = []
        for key in sorted(SyncConfig.get_ini_keys()):
            if key in section:
                continue
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                section[key] = str(value)
                added.append(key)
        return added

    def _write(self, parser: configparser.ConfigParser) -> None:
        self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file_path, "w", encoding="utf-8") as f:
            parser.write(f)

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        added = self._fill_missing_keys(self._parser["DEFAULT"])
        if not added:
            return False

        log.debug(f"Migrating config: added missing keys {', '.join(added)}.")
        try:
            self._write(self._parser)
        except OSError as e:
            log.error(f"Could not save migrated configuration file: {e}")
            return False
        return True
