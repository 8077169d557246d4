#!/usr/bin/env python3
"""Unified Configuration Loader - YAML settings plus environment credentials."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional
from dotenv import load_dotenv
import yaml

from newsreel.shared.types.errors import ConfigurationError

logger = logging.getLogger(__name__)
load_dotenv('.env.local')
load_dotenv()


class ConfigLoader:
    """Unified configuration loader for YAML files."""

    _config_cache: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def _get_config_dir() -> Path:
        """Get the configuration directory path."""
        config_dir_str = os.getenv('CONFIG_DIR')
        if config_dir_str:
            config_dir = Path(config_dir_str)
        else:
            # Default to the directory containing this file
            config_dir = Path(__file__).parent

        if not config_dir.exists():
            raise FileNotFoundError(f"Configuration directory not found: {config_dir}")
        return config_dir

    @classmethod
    def _load_file(cls, file_path: Path) -> Dict[str, Any]:
        """Load a YAML configuration file."""
        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to load configuration file {file_path}: {e}")
            raise ConfigurationError(f"Could not load configuration from {file_path}: {e}")

    @classmethod
    def load_config(cls, config_name: str = "app") -> Dict[str, Any]:
        """Load configuration by name."""
        if config_name in cls._config_cache:
            return cls._config_cache[config_name]

        config_dir = cls._get_config_dir()

        for ext in ['.yaml', '.yml']:
            config_path = config_dir / f"{config_name}{ext}"
            if config_path.exists():
                config = cls._load_file(config_path)
                cls._config_cache[config_name] = config
                logger.debug(f"Loaded {config_name} configuration from {config_path}")
                return config

        raise FileNotFoundError(f"No YAML configuration file found for '{config_name}' in {config_dir}")

    @classmethod
    def get(cls, key: str, default: Any = None, config_name: str = "app") -> Any:
        """Get a setting using dot notation (e.g., 'playback.settle_delay')."""
        config = cls.load_config(config_name)
        value = config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    @classmethod
    def section(cls, name: str, config_name: str = "app") -> Dict[str, Any]:
        """Get a top-level section as a dict, empty when absent."""
        value = cls.get(name, {}, config_name)
        return value if isinstance(value, dict) else {}

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the configuration cache."""
        cls._config_cache.clear()


@dataclass
class Credentials:
    """API credentials read from the environment."""
    newsdata_api_key: Optional[str] = None
    gemini_api_keys: List[str] = field(default_factory=list)
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_upload_preset: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    webhook_url: Optional[str] = None

    def require_newsdata_key(self) -> str:
        if not self.newsdata_api_key:
            raise ConfigurationError(
                "Newsdata.io API key is missing. Please set the NEWSDATA_API_KEY environment variable.")
        return self.newsdata_api_key

    def require_gemini_keys(self) -> List[str]:
        if not self.gemini_api_keys:
            raise ConfigurationError(
                "Gemini API key is missing. Please set GEMINI_API_KEY (or GEMINI_API_KEYS for fallbacks).")
        return list(self.gemini_api_keys)

    def require_cloudinary(self) -> str:
        if not self.cloudinary_cloud_name:
            raise ConfigurationError(
                "Cloudinary cloud name is missing. Please set the CLOUDINARY_CLOUD_NAME environment variable.")
        if not self.cloudinary_upload_preset and not (self.cloudinary_api_key and self.cloudinary_api_secret):
            raise ConfigurationError(
                "Cloudinary needs CLOUDINARY_UPLOAD_PRESET or CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET.")
        return self.cloudinary_cloud_name


def _collect_gemini_keys(env: Dict[str, str]) -> List[str]:
    """Primary key first, then comma-separated fallbacks; duplicates dropped."""
    keys: List[str] = []
    candidates = [env.get('GEMINI_API_KEY', ''), env.get('API_KEY', '')]
    candidates.extend(env.get('GEMINI_API_KEYS', '').split(','))
    for key in candidates:
        key = key.strip()
        if key and key not in keys:
            keys.append(key)
    return keys


def get_credentials(env: Optional[Dict[str, str]] = None) -> Credentials:
    """Read all credentials from the environment (or the given mapping)."""
    env = dict(os.environ) if env is None else env
    return Credentials(
        newsdata_api_key=env.get('NEWSDATA_API_KEY') or None,
        gemini_api_keys=_collect_gemini_keys(env),
        cloudinary_cloud_name=env.get('CLOUDINARY_CLOUD_NAME') or None,
        cloudinary_upload_preset=env.get('CLOUDINARY_UPLOAD_PRESET') or None,
        cloudinary_api_key=env.get('CLOUDINARY_API_KEY') or None,
        cloudinary_api_secret=env.get('CLOUDINARY_API_SECRET') or None,
        webhook_url=env.get('WEBHOOK_URL') or None
    )


def get_placeholder_news() -> List[Dict[str, Any]]:
    """Load placeholder stories shown before the first generation."""
    try:
        return list(ConfigLoader.get('placeholders', []) or [])
    except FileNotFoundError as e:
        logger.error(f"Failed to load placeholder config: {e}")
        return []
