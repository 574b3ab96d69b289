"""YAML-backed application settings with dot-notation access"""

import copy
import os
import yaml
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from loguru import logger

from .paths import get_data_dir

DEFAULT_SETTINGS_PATH = Path(__file__).parent.parent / 'config' / 'default_settings.yaml'

MIN_CHECK_INTERVAL = 100
MAX_CHECK_INTERVAL = 5000

# Used when the packaged defaults file is missing or unreadable
BUILTIN_DEFAULTS: Dict[str, Any] = {
    'clipboard': {
        'check_interval': 1000,
        'max_history_size': 20,
        'duplicate_window': 3600,
        'auto_start': True
    },
    'storage': {
        'database_path': None
    },
    'maintenance': {
        'enabled': True,
        'interval': 3600
    },
    'ai': {
        'enabled': True,
        'base_url': 'http://localhost:11434/v1',
        'model': 'gpt-oss:20b',
        'timeout': 30,
        'temperature': 0.7,
        'max_tokens': 1000,
        'max_retries': 3,
        'backoff': 0.5
    },
    'logging': {
        'level': 'INFO',
        'file_logging': True
    }
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


VALIDATION_RULES: List[Tuple[str, Callable[[Any], bool], str]] = [
    ('clipboard.check_interval',
     lambda v: _is_int(v) and MIN_CHECK_INTERVAL <= v <= MAX_CHECK_INTERVAL,
     f"must be {MIN_CHECK_INTERVAL}-{MAX_CHECK_INTERVAL}ms"),
    ('clipboard.max_history_size', lambda v: _is_int(v) and v >= 1, "must be a positive integer"),
    ('clipboard.duplicate_window', lambda v: _is_number(v) and v >= 0,
     "must be a non-negative number of seconds"),
    ('maintenance.interval', lambda v: _is_number(v) and v > 0, "must be a positive number of seconds"),
    ('ai.max_retries', lambda v: _is_int(v) and v >= 0, "must be a non-negative integer"),
]


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> None:
    """Merge updates into base in place, descending into nested sections"""
    for key, value in updates.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value


class ConfigManager:
    """Manages application configuration"""

    def __init__(self, config_path: Optional[str] = None,
                 defaults_path: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_path: User settings file (defaults to <data dir>/settings.yaml)
            defaults_path: Packaged defaults file
        """
        self.config_path = config_path or str(get_data_dir() / 'settings.yaml')
        self.defaults_path = Path(defaults_path) if defaults_path else DEFAULT_SETTINGS_PATH
        self.config: Dict[str, Any] = {}
        self._load_defaults()
        self._load_user_config()

    @staticmethod
    def _read_yaml(path) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise yaml.YAMLError(f"Expected a mapping at the top of {path}")
        return data

    def _load_defaults(self):
        self.config = copy.deepcopy(BUILTIN_DEFAULTS)
        try:
            deep_merge(self.config, self._read_yaml(self.defaults_path))
        except FileNotFoundError:
            logger.warning(f"Default settings not found, using built-in values: {self.defaults_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load default settings: {e}")

    def _load_user_config(self):
        if not os.path.exists(self.config_path):
            return

        try:
            deep_merge(self.config, self._read_yaml(self.config_path))
            logger.info(f"Loaded user configuration from {self.config_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Ignoring unreadable user config {self.config_path}: {e}")

    def save(self) -> bool:
        """Write the current configuration to the user settings file"""
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.config_path)), exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False)

        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to save configuration: {e}")
            return False

        logger.info(f"Configuration saved to {self.config_path}")
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            key: Dotted path such as 'clipboard.check_interval'
            default: Returned when any part of the path is missing

        Returns:
            Configuration value
        """
        node: Any = self.config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any):
        """Set a value by dotted path, creating intermediate sections"""
        *parents, leaf = key.split('.')
        node = self.config
        for part in parents:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]

        node[leaf] = value
        logger.debug(f"Set config: {key} = {value}")

    def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)

    def reset(self):
        """Discard runtime changes and user settings"""
        self._load_defaults()
        logger.info("Configuration reset to defaults")

    def validate(self) -> bool:
        """
        Check the settings the clipboard engine depends on

        Returns:
            True if every rule passes; each failure is logged
        """
        valid = True
        for key, check, message in VALIDATION_RULES:
            value = self.get(key)
            if value is None or not check(value):
                logger.error(f"Invalid config {key}={value!r}: {message}")
                valid = False
        return valid
