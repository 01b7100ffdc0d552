"""
Configuration management for the judgeloop server.

Values come from built-in defaults, then an optional JSON file, then
environment variables. Later sources win.
"""

import copy
import json
import os
from typing import Any, Dict, Optional

from judgeloop.utils.logger_config import get_logger

logger = get_logger("config_manager")

DEFAULT_CONFIG_PATH = "config/judgeloop.json"


class ConfigManager:
    """Centralized configuration management for the judgeloop server"""

    ENV_MAPPINGS = {
        "JUDGELOOP_LOG_LEVEL": ("logging", "level"),
        "JUDGELOOP_LOG_DIR": ("logging", "directory"),
        "JUDGELOOP_LOG_COLORS": ("logging", "enable_colors"),
        "JUDGELOOP_JUDGE_ENDPOINT": ("execution_service", "endpoint"),
        "JUDGELOOP_CALLBACK_URL": ("execution_service", "callback_url"),
        "JUDGELOOP_JUDGE_TIMEOUT": ("execution_service", "timeout"),
        "JUDGELOOP_DB_PATH": ("database", "path"),
        "JUDGELOOP_DB_CONFLICT_RETRIES": ("database", "conflict_retries"),
        "JUDGELOOP_HOST": ("server", "host"),
        "JUDGELOOP_PORT": ("server", "port"),
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager

        Args:
            config_path: Path to configuration file (optional)
        """
        self.config_path = config_path or os.getenv("JUDGELOOP_CONFIG", DEFAULT_CONFIG_PATH)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables"""
        self._config = self._get_default_config()

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                self._merge_config(file_config)
                logger.info(f"Loaded configuration from {self.config_path}")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to load config file {self.config_path}: {e}")

        self._load_from_env()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values"""
        return {
            "logging": {
                "level": "INFO",
                "directory": "logs",
                "enable_colors": True
            },
            "execution_service": {
                "endpoint": "http://localhost:2358",
                "callback_url": "http://localhost:5000/api/submissions/callback",
                "timeout": 10
            },
            "database": {
                "path": "data/judgeloop.duckdb",
                "conflict_retries": 5
            },
            "server": {
                "host": "0.0.0.0",
                "port": 5000
            }
        }

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """Merge new configuration into existing config"""
        def merge_dict(target: Dict[str, Any], source: Dict[str, Any]) -> None:
            for key, value in source.items():
                if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                    merge_dict(target[key], value)
                else:
                    target[key] = value

        merge_dict(self._config, new_config)

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        for env_var, path in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value is not None:
                self._set_nested_value(path, self._parse_env_value(value))

    def _set_nested_value(self, path: tuple, value: Any) -> None:
        current = self._config
        for key in path[:-1]:
            current = current.setdefault(key, {})
        current[path[-1]] = value

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value to appropriate type"""
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation

        Args:
            key: Configuration key (e.g., "database.path")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        current = self._config
        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default
        return current

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        self._set_nested_value(tuple(key.split('.')), value)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section"""
        return self._config.get(section, {})

    def to_dict(self) -> Dict[str, Any]:
        """Get complete configuration as dictionary"""
        return copy.deepcopy(self._config)

    def save(self, path: Optional[str] = None) -> None:
        """
        Save current configuration to file

        Args:
            path: File path to save to (uses default if not specified)
        """
        save_path = path or self.config_path
        save_dir = os.path.dirname(save_path)
        if save_dir:
            os.makedirs(save_dir, exist_ok=True)

        with open(save_path, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)

        logger.info(f"Configuration saved to {save_path}")


# Global configuration instance
_global_config: Optional[ConfigManager] = None


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Get or create the global configuration instance"""
    global _global_config
    if _global_config is None:
        _global_config = ConfigManager(config_path)
    return _global_config


def set_config(config_manager: ConfigManager) -> None:
    """Replace the global configuration instance"""
    global _global_config
    _global_config = config_manager
