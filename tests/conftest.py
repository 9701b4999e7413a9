"""Shared fixtures for dirwatcher tests."""
from __future__ import annotations

import errno
import os
from collections import deque
from pathlib import Path

import pytest

from dirwatcher.watch.dispatch import ProcessDispatcher
from dirwatcher.watch.errors import ClosedWatchServiceError
from dirwatcher.watch.events import EventType, WatchEvent, WATCHED_KINDS
from dirwatcher.watch.service import Sensitivity


class FakeKey:
    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.valid = True
        self.cancelled = False
        self.events: list[WatchEvent] = []

    def is_valid(self) -> bool:
        return self.valid

    def cancel(self) -> None:
        self.valid = False
        self.cancelled = True

    def __repr__(self) -> str:
        return f"FakeKey({str(self.directory)!r})"


class FakeWatchService:
    """In-memory watch service; take() reports closed once nothing is signalled."""

    def __init__(self) -> None:
        self.keys_by_path: dict[Path, FakeKey] = {}
        self.signalled: deque[FakeKey] = deque()
        self.registrations: list[tuple[Path, tuple, Sensitivity]] = []
        self.trees: list[Path] = []
        self.fail_on: set[Path] = set()
        self.closed = False

    def watch_tree(self, path, sensitivity=Sensitivity.HIGH) -> None:
        directory = Path(path)
        if not directory.exists():
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(directory))
        if not directory.is_dir():
            raise NotADirectoryError(errno.ENOTDIR, "Not a directory", str(directory))
        self.trees.append(directory)

    def register(self, path, kinds=WATCHED_KINDS, sensitivity=Sensitivity.HIGH) -> FakeKey:
        directory = Path(path)
        if directory in self.fail_on:
            raise PermissionError(errno.EACCES, "Permission denied", str(directory))
        if not directory.is_dir():
            raise NotADirectoryError(errno.ENOTDIR, "Not a directory", str(directory))

        self.registrations.append((directory, tuple(kinds), sensitivity))
        key = self.keys_by_path.get(directory)
        if key is None or not key.valid:
            key = FakeKey(directory)
            self.keys_by_path[directory] = key
        return key

    def emit(self, directory, event_type: EventType, name: str | None = None, count: int = 1) -> FakeKey:
        key = self.keys_by_path[Path(directory)]
        context = Path(name) if name is not None else None
        key.events.append(WatchEvent(event_type=event_type, context=context, count=count))
        self._signal(key)
        return key

    def invalidate(self, directory) -> FakeKey:
        key = self.keys_by_path[Path(directory)]
        key.valid = False
        self._signal(key)
        return key

    def take(self) -> FakeKey:
        if self.closed or not self.signalled:
            raise ClosedWatchServiceError("closed")
        return self.signalled.popleft()

    def poll_events(self, key: FakeKey) -> list[WatchEvent]:
        events, key.events = key.events, []
        return events

    def reset(self, key: FakeKey) -> bool:
        return key.valid

    def cancel(self, key: FakeKey) -> None:
        key.cancel()

    def close(self) -> None:
        self.closed = True

    def _signal(self, key: FakeKey) -> None:
        if key not in self.signalled:
            self.signalled.append(key)


class RecordingDispatcher(ProcessDispatcher):
    """Records commands instead of running them."""

    def __init__(self) -> None:
        super().__init__()
        self.commands: list[str] = []

    def dispatch(self, command: str):
        self.commands.append(command)
        return 0


@pytest.fixture()
def fake_service() -> FakeWatchService:
    return FakeWatchService()


@pytest.fixture()
def recording_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture()
def tree(tmp_path: Path) -> Path:
    """root/{a/{b}, c} with a file in a."""
    root = tmp_path / "root"
    (root / "a" / "b").mkdir(parents=True)
    (root / "c").mkdir()
    (root / "a" / "file.txt").write_text("x", encoding="utf-8")
    return root


@pytest.fixture()
def make_symlink():
    def factory(target: Path, link: Path) -> Path:
        try:
            os.symlink(target, link, target_is_directory=True)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")
        return link

    return factory
