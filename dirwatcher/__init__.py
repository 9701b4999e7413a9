"""
dirwatcher - recursive directory watcher with command callbacks
"""
from .cli import main

__version__ = "1.0.0"

__all__ = ['main', '__version__']
