"""
dirwatcher utilities - configuration and logging
"""
from .config import WatcherConfig, load_config
from .logger import setup_logging, get_logger, log_exception

__all__ = [
    'WatcherConfig', 'load_config',
    'setup_logging', 'get_logger', 'log_exception',
]
