# dirwatcher/watch/service.py

"""
Watch service built on watchdog observers.

Each registered directory gets a WatchKey. Keys below a common root share
one recursive watchdog watch whose handler routes every event to the key of
the directory it happened in; events in unregistered directories are
dropped. Observer threads only queue events on keys; consumers block on
take() for the next signalled key, drain it with poll_events() and re-arm it
with reset().
"""
import os
import stat
import errno
import logging
import threading
from enum import Enum
from pathlib import Path
from queue import Queue, Empty
from typing import Dict, Iterable, List, Optional, Tuple, Union

from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver
from watchdog.events import (
    FileSystemEventHandler,
    FileSystemMovedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileDeletedEvent,
    DirCreatedEvent,
    DirModifiedEvent,
    DirDeletedEvent,
    DirMovedEvent,
)

from .errors import ClosedWatchServiceError
from .events import EventType, WatchEvent, WATCHED_KINDS

logger = logging.getLogger(__name__)

MAX_EVENT_LIST_SIZE = 512


class Sensitivity(Enum):
    """Polling interval in seconds for the polling observer"""
    HIGH = 2
    MEDIUM = 10
    LOW = 30


class WatchKey:
    """
    Registration of one directory with a WatchService
    """

    def __init__(self, service: "WatchService", directory: Path,
                 kinds: Iterable[EventType], sensitivity: Sensitivity):
        self.directory = directory
        self.kinds = frozenset(kinds)
        self.sensitivity = sensitivity

        self._service = service
        self._lock = threading.Lock()
        self._events: List[WatchEvent] = []
        self._last_modify: Dict[Path, WatchEvent] = {}
        self._signalled = False
        self._valid = True

        # Tree watch delivering this key's events, set by the service
        self._watch: Optional["_TreeWatch"] = None

    def is_valid(self) -> bool:
        return self._valid

    def signal_event(self, event_type: EventType, context: Optional[Path]):
        """Queue an event on this key and signal it if it is not already"""
        is_modify = event_type is EventType.MODIFIED

        with self._lock:
            if not self._valid:
                return

            if self._events:
                prev = self._events[-1]
                if prev.event_type is EventType.OVERFLOW or (
                        prev.event_type is event_type and prev.context == context):
                    prev.count += 1
                    return

                if self._last_modify:
                    if is_modify:
                        last = self._last_modify.get(context)
                        if last is not None:
                            last.count += 1
                            return
                    else:
                        self._last_modify.pop(context, None)

                if len(self._events) >= MAX_EVENT_LIST_SIZE:
                    event_type = EventType.OVERFLOW
                    is_modify = False
                    context = None

            event = WatchEvent(event_type=event_type, context=context)
            if is_modify:
                self._last_modify[context] = event
            elif event_type is EventType.OVERFLOW:
                logger.warning(f"Event overflow for {self.directory}, pending events dropped")
                self._events.clear()
                self._last_modify.clear()
            self._events.append(event)
            self._signal()

    def invalidate(self):
        """Mark the key invalid and signal it so its consumer can retire it"""
        with self._lock:
            if not self._valid:
                return
            self._valid = False
            self._signal()

    def poll_events(self) -> List[WatchEvent]:
        """Remove and return all pending events in arrival order"""
        with self._lock:
            events = self._events
            self._events = []
            self._last_modify.clear()
        return events

    def reset(self) -> bool:
        """
        Re-arm the key

        Returns:
            False if the key is no longer valid
        """
        if self._valid and not os.path.isdir(self.directory):
            with self._lock:
                self._valid = False

        with self._lock:
            if not self._valid:
                return False
            if self._signalled:
                if self._events:
                    self._service._enqueue(self)
                else:
                    self._signalled = False
            return True

    def cancel(self):
        """Stop watching the directory; the key becomes invalid"""
        with self._lock:
            self._valid = False
        self._service._release(self)

    def _signal(self):
        # Caller holds self._lock
        if not self._signalled:
            self._signalled = True
            self._service._enqueue(self)

    def __repr__(self):
        state = "valid" if self._valid else "invalid"
        return f"WatchKey({str(self.directory)!r}, {state})"


class _TreeWatch:
    """One recursive watchdog watch shared by every key below its root"""

    def __init__(self, root: Path, slot: Optional[Sensitivity]):
        self.root = root
        self.slot = slot
        self.refs = 0
        self.observed: Optional[ObservedWatch] = None

    def __repr__(self):
        return f"_TreeWatch({str(self.root)!r}, refs={self.refs})"


class _RoutingHandler(FileSystemEventHandler):
    """Routes watchdog events of one tree watch to the keys it serves"""

    def __init__(self, service: "WatchService", watch: _TreeWatch):
        super().__init__()
        self.service = service
        self.watch = watch

    def on_any_event(self, event):
        src_path = os.fsdecode(event.src_path)

        if isinstance(event, (DirDeletedEvent, DirMovedEvent)):
            # A watched directory went away
            gone = self._key_at(src_path)
            if gone is not None:
                logger.debug(f"Watched directory removed: {src_path}")
                gone.invalidate()

        if isinstance(event, FileSystemMovedEvent):
            self._queue(EventType.DELETED, src_path)
            self._queue(EventType.CREATED, os.fsdecode(event.dest_path))
        elif isinstance(event, (FileCreatedEvent, DirCreatedEvent)):
            self._queue(EventType.CREATED, src_path)
        elif isinstance(event, (FileDeletedEvent, DirDeletedEvent)):
            self._queue(EventType.DELETED, src_path)
        elif isinstance(event, DirModifiedEvent):
            # Content changes of a watched directory come through its own key
            if self._key_at(src_path) is None:
                self._queue(EventType.MODIFIED, src_path)
        elif isinstance(event, FileModifiedEvent):
            self._queue(EventType.MODIFIED, src_path)

    def _key_at(self, path: str) -> Optional[WatchKey]:
        key = self.service._key_at(Path(path))
        if key is None or key._watch is not self.watch:
            return None
        return key

    def _queue(self, event_type: EventType, path: str):
        key = self._key_at(os.path.dirname(path))
        if key is None or event_type not in key.kinds:
            return
        key.signal_event(event_type, Path(os.path.basename(path)))


class WatchService:
    """
    Watch service handing out one key per registered directory.

    Keys below a common root share a single recursive watchdog watch, so a
    tree costs one OS watch handle no matter how many directories it has.
    """

    def __init__(self, use_polling: bool = False, wake_interval: float = 0.5):
        """
        Initialize watch service

        Args:
            use_polling: Use polling observers instead of OS events
            wake_interval: Granularity of the blocking wait in take()
        """
        self.use_polling = use_polling
        self.wake_interval = wake_interval

        self._lock = threading.RLock()
        self._observers: Dict[Optional[Sensitivity], BaseObserver] = {}
        self._watches: Dict[Tuple[Optional[Sensitivity], Path], _TreeWatch] = {}
        self._keys_by_path: Dict[Path, WatchKey] = {}
        self._signalled: "Queue[object]" = Queue()
        self._closed = False

        logger.debug(f"WatchService initialized (polling: {use_polling})")

    def watch_tree(self, path: Union[str, Path],
                   sensitivity: Sensitivity = Sensitivity.HIGH):
        """
        Make sure one watch covers the whole tree below path

        Directories registered below path afterwards share that watch.

        Raises:
            OSError: If path is not a watchable directory
            ClosedWatchServiceError: If the service is closed
        """
        self._check_open()
        directory = self._directory(path)

        with self._lock:
            slot = self._slot(sensitivity)
            if self._find_watch(directory, slot) is None:
                self._schedule(directory, slot, sensitivity)

    def register(self, path: Union[str, Path],
                 kinds: Iterable[EventType] = WATCHED_KINDS,
                 sensitivity: Sensitivity = Sensitivity.HIGH) -> WatchKey:
        """
        Register a directory

        Args:
            path: Directory to watch
            kinds: Event types to report
            sensitivity: Polling interval used by polling observers

        Returns:
            The directory's key; the existing one if it is still valid

        Raises:
            OSError: If path is not a watchable directory
            ClosedWatchServiceError: If the service is closed
        """
        self._check_open()
        directory = self._directory(path)

        with self._lock:
            existing = self._keys_by_path.get(directory)
            if existing is not None and existing.is_valid():
                existing.kinds = frozenset(kinds)
                return existing
            if existing is not None:
                self._release(existing)

            key = WatchKey(self, directory, kinds, sensitivity)
            key._watch = self._attach(directory, sensitivity)
            self._keys_by_path[directory] = key

        return key

    def take(self) -> WatchKey:
        """
        Wait for the next signalled key

        Raises:
            ClosedWatchServiceError: If the service is (or gets) closed
        """
        while True:
            self._check_open()
            try:
                key = self._signalled.get(timeout=self.wake_interval)
            except Empty:
                continue
            return self._unwrap(key)

    def poll(self, timeout: Optional[float] = None) -> Optional[WatchKey]:
        """Return the next signalled key, or None if none arrives in time"""
        self._check_open()
        try:
            if timeout is None:
                key = self._signalled.get_nowait()
            else:
                key = self._signalled.get(timeout=timeout)
        except Empty:
            return None
        return self._unwrap(key)

    def poll_events(self, key: WatchKey) -> List[WatchEvent]:
        return key.poll_events()

    def reset(self, key: WatchKey) -> bool:
        valid = key.reset()
        if not valid:
            self._release(key)
        return valid

    def cancel(self, key: WatchKey):
        key.cancel()

    def close(self):
        """Cancel every key, stop the observers and wake up waiters"""
        with self._lock:
            if self._closed:
                return
            self._closed = True

            keys = list(self._keys_by_path.values())
            self._keys_by_path.clear()
            for key in keys:
                key.cancel()
            self._watches.clear()

            observers = list(self._observers.values())
            self._observers.clear()

        for observer in observers:
            try:
                observer.stop()
                observer.join(timeout=10)
            except RuntimeError as e:
                logger.error(f"Error stopping observer: {e}")

        self._signalled.put(_CLOSED)
        logger.debug("WatchService closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _directory(self, path: Union[str, Path]) -> Path:
        directory = Path(os.path.abspath(path))
        st = os.stat(directory)
        if not stat.S_ISDIR(st.st_mode):
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), str(directory))
        return directory

    def _slot(self, sensitivity: Sensitivity) -> Optional[Sensitivity]:
        # Native observers ignore sensitivity, polling ones get one per interval
        return sensitivity if self.use_polling else None

    def _observer_for(self, sensitivity: Sensitivity) -> BaseObserver:
        slot = self._slot(sensitivity)
        observer = self._observers.get(slot)
        if observer is None:
            if self.use_polling:
                observer = PollingObserver(timeout=sensitivity.value)
                logger.debug(f"Using polling observer (interval: {sensitivity.value}s)")
            else:
                observer = Observer()
                logger.debug("Using OS event observer")
            observer.start()
            self._observers[slot] = observer
        return observer

    def _find_watch(self, directory: Path, slot: Optional[Sensitivity]) -> Optional[_TreeWatch]:
        for candidate in (directory, *directory.parents):
            watch = self._watches.get((slot, candidate))
            if watch is not None:
                return watch
        return None

    def _schedule(self, directory: Path, slot: Optional[Sensitivity],
                  sensitivity: Sensitivity) -> _TreeWatch:
        watch = _TreeWatch(directory, slot)
        observer = self._observer_for(sensitivity)
        watch.observed = observer.schedule(_RoutingHandler(self, watch), str(directory), recursive=True)
        self._watches[(slot, directory)] = watch
        logger.debug(f"Watching tree {directory}")
        return watch

    def _attach(self, directory: Path, sensitivity: Sensitivity) -> _TreeWatch:
        slot = self._slot(sensitivity)
        watch = self._find_watch(directory, slot)
        if watch is None:
            watch = self._schedule(directory, slot, sensitivity)
        watch.refs += 1
        return watch

    def _key_at(self, directory: Path) -> Optional[WatchKey]:
        with self._lock:
            return self._keys_by_path.get(directory)

    def _enqueue(self, key: WatchKey):
        self._signalled.put(key)

    def _release(self, key: WatchKey):
        with self._lock:
            if self._keys_by_path.get(key.directory) is key:
                del self._keys_by_path[key.directory]

            watch = key._watch
            key._watch = None
            if watch is None:
                return

            watch.refs -= 1
            # Losing the root key means the tree itself may be gone
            if watch.refs <= 0 or key.directory == watch.root:
                self._drop_watch(watch)

    def _drop_watch(self, watch: _TreeWatch):
        # Caller holds self._lock
        if self._watches.get((watch.slot, watch.root)) is watch:
            del self._watches[(watch.slot, watch.root)]

        observer = self._observers.get(watch.slot)
        if observer is not None and watch.observed is not None:
            try:
                observer.unschedule(watch.observed)
            except KeyError:
                pass
        watch.observed = None
        logger.debug(f"Released watch for {watch.root}")

        # Keys still served by the dropped watch move to a new one
        orphans = sorted((k for k in self._keys_by_path.values() if k._watch is watch),
                         key=lambda k: k.directory)
        for key in orphans:
            key._watch = None
            if self._closed or not os.path.isdir(key.directory):
                key.invalidate()
                continue
            try:
                key._watch = self._attach(key.directory, key.sensitivity)
            except OSError as e:
                logger.warning(f"Cannot re-watch {key.directory}: {e}")
                key.invalidate()

    def _unwrap(self, item: object) -> WatchKey:
        if item is _CLOSED:
            # Leave the marker for other waiters
            self._signalled.put(_CLOSED)
            raise ClosedWatchServiceError("Watch service is closed")
        return item

    def _check_open(self):
        if self._closed:
            raise ClosedWatchServiceError("Watch service is closed")


_CLOSED = object()
