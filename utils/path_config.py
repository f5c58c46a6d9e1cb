"""Path configuration utilities for the SimpleChat client.

This module provides centralized path management for the application directories.
Directories are created on first access.

Key Features:
- Application root path resolution
- Config, logs and data directory management
- History file path resolution
"""
import os
from pathlib import Path


def get_app_root():
    """Get the root directory of the application."""
    return str(Path(__file__).parent.parent.absolute())


def get_config_dir():
    """Get the configuration directory path."""
    config_dir = os.path.join(get_app_root(), "config")
    os.makedirs(config_dir, exist_ok=True)
    return config_dir


def get_logs_dir():
    """Get the logs directory path."""
    logs_dir = os.path.join(get_app_root(), "logs")
    os.makedirs(logs_dir, exist_ok=True)
    return logs_dir


def get_data_dir():
    """Get the directory holding persisted chat history."""
    data_dir = os.path.join(get_app_root(), "data")
    os.makedirs(data_dir, exist_ok=True)
    return data_dir


def get_transport_config_file():
    """Get the transport configuration file path."""
    return os.path.join(get_config_dir(), "transport_config.json")


def get_history_file(filename: str = "chat_history.json"):
    """Get the path of the chat history blob."""
    return os.path.join(get_data_dir(), filename)
