# dirwatcher/watch/loop.py

"""
Event loop: waits for signalled directories and reacts to their events
"""
import os
import stat
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from .dispatch import CommandTemplate, ProcessDispatcher
from .errors import ClosedWatchServiceError
from .events import EventType, WatchEvent
from .registry import WatchSetRegistry
from .service import WatchKey, WatchService


class LoopState(Enum):
    WAITING = "waiting"
    DISPATCHING = "dispatching"
    TERMINATED = "terminated"


def is_directory(path: Path) -> bool:
    """Directory check without following symlinks; unreadable means no"""
    try:
        return stat.S_ISDIR(os.lstat(path).st_mode)
    except OSError:
        return False


class EventLoop:
    """
    Single-threaded observe/react cycle over a WatchSetRegistry.

    New sub-directories are registered in the same pass that sees them
    created. Events that happen inside a new directory before that
    registration completes are not reported.
    """

    def __init__(self, service: WatchService,
                 registry: WatchSetRegistry,
                 template: Optional[CommandTemplate] = None,
                 dispatcher: Optional[ProcessDispatcher] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize event loop

        Args:
            service: Watch service the registry's keys belong to
            registry: Registry of watched directories
            template: Callback command template, None for observation only
            dispatcher: Runs rendered callback commands
            logger: Logger for dispatch traces
        """
        self.service = service
        self.registry = registry
        self.template = template
        self.dispatcher = dispatcher or ProcessDispatcher()
        self.logger = logger or logging.getLogger(__name__)

        self.state = LoopState.WAITING
        self.stats = {
            'keys_processed': 0,
            'events_processed': 0,
            'overflows': 0,
            'callbacks': 0,
            'errors': 0,
        }

    def run(self) -> LoopState:
        """
        Process events until nothing is left to watch or the wait is interrupted

        Returns:
            Final state (always TERMINATED)
        """
        if self.registry.is_empty():
            self.logger.warning("Nothing to watch")
            self.state = LoopState.TERMINATED
            return self.state

        while self.state is not LoopState.TERMINATED:
            self.state = LoopState.WAITING
            try:
                key = self.service.take()
            except (KeyboardInterrupt, ClosedWatchServiceError):
                self.logger.info("Watching interrupted, shutting down")
                self.state = LoopState.TERMINATED
                break

            self.state = LoopState.DISPATCHING
            try:
                alive = self.process_key(key)
            except KeyboardInterrupt:
                self.logger.info("Interrupted while processing events, shutting down")
                self.state = LoopState.TERMINATED
                break

            if not alive:
                self.logger.info("All watched directories are gone")
                self.state = LoopState.TERMINATED

        return self.state

    def stop(self):
        """Wake up a blocked run() and make it return"""
        self.service.close()

    def process_key(self, key: WatchKey) -> bool:
        """
        Handle every pending event of one signalled key

        Args:
            key: Signalled watch key

        Returns:
            False once the registry has become empty
        """
        self.stats['keys_processed'] += 1

        directory = self.registry.path_of(key)
        if directory is None:
            self.logger.warning(f"Watch key not recognized: {key!r}")
            self.service.poll_events(key)
            self.service.cancel(key)
            return not self.registry.is_empty()

        for event in self.service.poll_events(key):
            self._process_event(directory, event)

        if not self.service.reset(key):
            self.registry.retire(key)
            if self.registry.is_empty():
                return False

        return True

    def _process_event(self, directory: Path, event: WatchEvent):
        self.stats['events_processed'] += 1

        if event.event_type is EventType.OVERFLOW:
            # Some events for this directory were lost
            self.stats['overflows'] += 1
            self.logger.debug(f"{directory}: {event}, events lost")
            return

        child = directory / event.context
        self.logger.debug(f"{directory}: {event}")

        if event.event_type is EventType.CREATED and is_directory(child):
            try:
                self.registry.register_tree(child)
            except OSError as e:
                self.stats['errors'] += 1
                self.logger.error(f"Failed to watch new directory {child}: {e}")

        if self.template is not None:
            command = self.template.render(child, event.event_type)
            self.stats['callbacks'] += 1
            self.dispatcher.dispatch(command)
