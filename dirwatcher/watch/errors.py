# dirwatcher/watch/errors.py

"""
Exception types raised by the watcher
"""


class WatcherError(Exception):
    """Base class for dirwatcher errors"""


class WatcherConfigError(WatcherError):
    """Invalid or incomplete configuration, detected before watching starts"""


class ClosedWatchServiceError(WatcherError):
    """Raised by a blocking wait on a watch service that has been closed"""
