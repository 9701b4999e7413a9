"""
dirwatcher watch module - watch set management and event processing
"""
from .events import WatchEvent, EventType
from .errors import WatcherError, WatcherConfigError, ClosedWatchServiceError
from .patterns import DirectoryFilter
from .service import WatchService, WatchKey, Sensitivity
from .registry import WatchSetRegistry
from .dispatch import CommandTemplate, ProcessDispatcher
from .loop import EventLoop, LoopState

__all__ = [
    'WatchEvent',
    'EventType',
    'WatcherError',
    'WatcherConfigError',
    'ClosedWatchServiceError',
    'DirectoryFilter',
    'WatchService',
    'WatchKey',
    'Sensitivity',
    'WatchSetRegistry',
    'CommandTemplate',
    'ProcessDispatcher',
    'EventLoop',
    'LoopState',
]
