#!/usr/bin/env python3
"""Configuration loader for the SimpleChat client.

This module provides a centralized configuration management system. It handles
loading and merging configuration from built-in defaults, the JSON override file
in the config directory and environment variables (a `.env` file is honoured).

Key Features:
- Hierarchical configuration management
- Default configuration values
- JSON file-based configuration
- Environment variable overrides for the endpoint and log level
- Deep merging of configuration updates
- Configuration validation
"""
import os
import json
import logging
from typing import Any, Dict

from dotenv import load_dotenv

from .path_config import get_config_dir

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "transport_config.json"

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "SIMPLECHAT_SERVER_URL": ("transport", "url"),
    "SIMPLECHAT_LOG_LEVEL": ("logging", "level"),
}


class ConfigManager:
    def __init__(self, config_dir: str = None, use_env: bool = True):
        """Initialize the configuration manager."""
        self._config_dir = config_dir
        self._config: Dict[str, Any] = {}
        self._load_defaults()
        self._load_config_files()
        if use_env:
            self._load_env_overrides()

    @property
    def config_dir(self) -> str:
        return self._config_dir or get_config_dir()

    def _load_defaults(self) -> None:
        """Load default configuration values."""
        self._config = {
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "transport": {
                "url": "http://localhost:5348",
                "connect_timeout": 10,
                "transports": ["websocket"],
                "socketio_path": "socket.io"
            },
            "echo_server": {
                "host": "0.0.0.0",
                "port": 5348,
                "mode": "echo",
                "max_message_size": 64 * 1024 * 1024
            },
            "storage": {
                "history_file": "chat_history.json"
            }
        }

    def _load_config_files(self) -> None:
        """Load configuration from the JSON file in the config directory."""
        filepath = os.path.join(self.config_dir, CONFIG_FILENAME)
        if not os.path.exists(filepath):
            return
        try:
            with open(filepath, 'r') as f:
                file_config = json.load(f)
            self._validate_config(file_config)
        except (OSError, ValueError) as e:
            # JSONDecodeError is a ValueError too
            logger.error(f"Error loading config file {filepath}: {e}")
            return
        self._merge_config(self._config, file_config)

    def _load_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        load_dotenv()
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                logger.debug(f"Config override from {env_name}: {section}.{key}")
                self.set(section, key, value)

    def _merge_config(self, base: Dict, update: Dict) -> None:
        """
        Recursively merge two configuration dictionaries.
        Args:
            base: Base configuration dictionary
            update: Dictionary with updates to merge
        """
        for key, value in update.items():
            if (
                key in base and
                isinstance(base[key], dict) and
                isinstance(value, dict)
            ):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate the sections of a loaded configuration file."""
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a JSON object")
        if "transport" in config:
            self._validate_transport_config(config["transport"])
        if "echo_server" in config:
            self._validate_echo_server_config(config["echo_server"])

    def _validate_transport_config(self, config: Dict[str, Any]) -> None:
        """Validate transport configuration"""
        timeout = config.get("connect_timeout")
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
                raise ValueError("Transport connect_timeout must be a number")
            if timeout <= 0:
                raise ValueError("Transport connect_timeout must be positive")
        if "url" in config and not isinstance(config["url"], str):
            raise ValueError("Transport url must be a string")

    def _validate_echo_server_config(self, config: Dict[str, Any]) -> None:
        """Validate echo server configuration"""
        if "port" in config and not isinstance(config["port"], int):
            raise ValueError("Echo server port must be an integer")
        if config.get("mode", "echo") not in ("echo", "relay"):
            raise ValueError("Echo server mode must be 'echo' or 'relay'")
        size = config.get("max_message_size")
        if size is not None and (isinstance(size, bool) or not isinstance(size, int) or size <= 0):
            raise ValueError("Echo server max_message_size must be a positive integer")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found
        Returns:
            Configuration value or default
        """
        try:
            return self._config[section][key]
        except KeyError:
            return default

    def set(self, section: str, key: str, value: Any) -> None:
        """
        Set a configuration value.
        Args:
            section: Configuration section
            key: Configuration key
            value: Value to set
        """
        if section not in self._config:
            self._config[section] = {}
        self._config[section][key] = value

    def save(self, filename: str = CONFIG_FILENAME) -> bool:
        """
        Save current configuration to a file.
        Args:
            filename: Name of the file to save to
        Returns:
            bool: True if save was successful, False otherwise
        """
        filepath = os.path.join(self.config_dir, filename)
        try:
            os.makedirs(os.path.dirname(filepath), exist_ok=True)
            with open(filepath, 'w') as f:
                json.dump(self._config, f, indent=2)
            return True
        except OSError as e:
            logger.error(f"Error saving config to {filename}: {e}")
            return False

    @property
    def config(self) -> Dict[str, Any]:
        """Get the complete configuration dictionary."""
        return self._config.copy()


# Create a global configuration instance
config = ConfigManager()
