"""Configuration management module."""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .security import SecureFileHandler, validate_file_path_input
from .error_handler import ValidationError

logger = logging.getLogger(__name__)


class Config:
    """Configuration management for the application."""

    DEFAULT_CONFIG = {
        'opendata': {
            'holiday': {
                # 新北市政府資料開放平臺: 政府行政機關辦公日曆表
                'url': 'https://data.ntpc.gov.tw/api/datasets/308dcd75-6434-45bc-a95f-584da4fed251/csv/file',
                'output_dir': './data/holidays'
            }
        },
        'download': {
            'connect_timeout': 10,
            'read_timeout': 30
        },
        'realtime': {
            'feed_url': 'https://alerts.ncdr.nat.gov.tw/JSONAtomFeed.ashx?AlertType=33',
            'city_names': ['臺北市', '台北市'],
            'cache_ttl': 60,
            'connect_timeout': 10,
            'read_timeout': 30
        },
        'store': {
            'cache_ttl': 300
        }
    }

    ENV_OVERRIDES = {
        'HOLIDAY_DATA_URL': 'opendata.holiday.url',
        'HOLIDAY_OUTPUT_DIR': 'opendata.holiday.output_dir',
        'REALTIME_FEED_URL': 'realtime.feed_url',
    }

    def __init__(self, config_file: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_file: Path to configuration file (optional)
        """
        self.config_file = config_file or self._get_default_config_path()
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self.load_config()

    def _get_default_config_path(self) -> str:
        return str(Path.home() / '.tw-holidays' / 'config.json')

    def load_config(self):
        """Load configuration from file and environment variables."""
        if os.path.exists(self.config_file):
            try:
                validated_path = validate_file_path_input(self.config_file, require_exists=True)
                content = SecureFileHandler.read_secure_file(validated_path)
                file_config = json.loads(content)
                if not isinstance(file_config, dict):
                    raise ValueError("top-level JSON value must be an object")
                self._merge_config(file_config)
            except (ValueError, OSError, ValidationError) as e:
                logger.warning(f"Failed to load config file {self.config_file}: {e}")

        for env_name, key_path in self.ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                self.set(key_path, value)

    def save_config(self):
        """Save current configuration to file."""
        try:
            validated_path = validate_file_path_input(self.config_file, allow_create=True)
            content = json.dumps(self.config, indent=2, ensure_ascii=False)
            SecureFileHandler.write_secure_file(
                validated_path,
                content,
                permissions=SecureFileHandler.CONFIG_FILE_PERMISSIONS
            )
        except (OSError, ValidationError) as e:
            logger.warning(f"Failed to save config file {self.config_file}: {e}")

    def _merge_config(self, new_config: Dict[str, Any]):
        def merge_dict(base: Dict, update: Dict):
            for key, value in update.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                    merge_dict(base[key], value)
                else:
                    base[key] = value

        merge_dict(self.config, new_config)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value by key path.

        Args:
            key_path: Dot-separated key path (e.g., 'opendata.holiday.url')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self.config
        try:
            for key in key_path.split('.'):
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value: Any):
        """Set configuration value by key path."""
        keys = key_path.split('.')
        config = self.config

        for key in keys[:-1]:
            if key not in config or not isinstance(config[key], dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def get_holiday_config(self) -> Dict[str, Any]:
        return self.get('opendata.holiday', {})

    def get_download_config(self) -> Dict[str, Any]:
        return self.config.get('download', {})

    def get_realtime_config(self) -> Dict[str, Any]:
        return self.config.get('realtime', {})
