"""Utility functions and helpers for the SimpleChat client"""
from .path_config import (
    get_app_root,
    get_config_dir,
    get_logs_dir,
    get_data_dir,
    get_transport_config_file,
    get_history_file
)

__all__ = [
    'get_app_root',
    'get_config_dir',
    'get_logs_dir',
    'get_data_dir',
    'get_transport_config_file',
    'get_history_file'
]
