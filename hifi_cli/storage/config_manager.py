"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from hifi_cli.exceptions import ConfigurationError
from hifi_cli.models.config import AppConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    def load_config(self, cli_options: dict[str, Any] | None = None) -> AppConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.
        A missing file is not an error: every setting has a default.

        Raises:
            ConfigurationError: If the config file is unreadable or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_from_file = self._get_config_as_dict()

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return AppConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_config(self, config: AppConfig) -> None:
        """Writes every INI key of the given configuration to disk."""
        parser = configparser.ConfigParser()
        parser["DEFAULT"] = {}
        for key in sorted(AppConfig.get_ini_keys()):
            parser["DEFAULT"][key] = self._to_ini_value(getattr(config, key))

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                parser.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def update(self, **changes: Any) -> AppConfig:
        """Applies and persists a set of changes, returning the validated config."""
        config = self.load_config()
        try:
            for key, value in changes.items():
                setattr(config, key, value)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid setting:\n{e}") from e
        self.save_config(config)
        return config

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        raw = {
            "api_base_url": section.get("api_base_url"),
            "album_api_url": section.get("album_api_url"),
            "download_dir": section.get("download_dir"),
            "download_format": section.get("download_format"),
            "ffmpeg_path": section.get("ffmpeg_path"),
            "mpv_path": section.get("mpv_path"),
            "album_delay": section.getfloat("album_delay", fallback=None),
            "volume": section.getint("volume", fallback=None),
            "embed_tags": section.getboolean("embed_tags", fallback=None),
        }
        return {key: value for key, value in raw.items() if value is not None}

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = AppConfig()
        needs_saving = False
        config_section = self._parser["DEFAULT"]

        for key in AppConfig.get_ini_keys():
            if key not in config_section:
                config_section[key] = self._to_ini_value(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if hasattr(value, "value"):
            return str(value.value)
        # configparser uses % for interpolation
        return str(value).replace("%", "%%")
