"""Simple YAML configuration loader for Recap."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any
import logging

from ..models.settings import AppSettings

logger = logging.getLogger(__name__)

# YAML key path -> AppSettings field
SETTINGS_KEYS = {
    "transcription.provider": "whisper_provider",
    "transcription.base_url": "whisper_base_url",
    "transcription.api_key": "whisper_api_key",
    "transcription.model": "whisper_model",
    "transcription.language": "language",
    "transcription.local_locale": "local_locale",
    "llm.base_url": "openai_base_url",
    "llm.api_key": "openai_api_key",
    "llm.model": "openai_model",
    "summarization.use_chunking": "use_chunking",
    "summarization.chunk_size": "chunk_size",
    "summarization.chunk_prompt": "chunk_prompt",
    "summarization.summary_prompt": "summary_prompt",
    "summarization.auto_generate_title": "auto_generate_title",
    "summarization.title_prompt": "title_prompt",
}


class RecapConfig:
    """Recap configuration loader."""

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (("storage", "data_directory"), ("logging", "file_path")):
            value = (config.get(section) or {}).get(key)
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'llm.model').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def build_app_settings(self) -> AppSettings:
        """Build live application settings from the YAML sections.

        Keys missing from the file keep their AppSettings defaults.
        """
        settings = AppSettings()
        for key_path, field_name in SETTINGS_KEYS.items():
            value = self.get(key_path)
            if value is None:
                continue
            current = getattr(settings, field_name)
            if isinstance(current, bool):
                value = bool(value)
            elif isinstance(current, int):
                value = int(value)
            else:
                value = str(value)
            setattr(settings, field_name, value)
        return settings
