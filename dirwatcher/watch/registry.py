# dirwatcher/watch/registry.py

"""
Registry of watched directories
"""
import os
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from .events import WATCHED_KINDS
from .patterns import DirectoryFilter, is_eligible
from .service import Sensitivity, WatchKey, WatchService


def _raise_walk_error(error: OSError):
    raise error


class WatchSetRegistry:
    """
    Maps watch keys to the directories they observe.

    Only the thread running the event loop may mutate the registry.
    """

    def __init__(self, service: WatchService,
                 root: Optional[Union[str, Path]] = None,
                 directory_filter: Optional[DirectoryFilter] = None,
                 sensitivity: Sensitivity = Sensitivity.HIGH,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize registry, seeding it from root when one is given

        Args:
            service: Watch service issuing keys
            root: Directory tree to register initially
            directory_filter: Only directories matching this filter are watched
            sensitivity: Sensitivity requested for every registration
            logger: Logger for registration traces

        Raises:
            OSError: If the initial scan fails
        """
        self.service = service
        self.directory_filter = directory_filter
        self.sensitivity = sensitivity
        self.logger = logger or logging.getLogger(__name__)

        self._keys: Dict[WatchKey, Path] = {}
        self._paths: Dict[Path, WatchKey] = {}

        if root is not None:
            self.logger.info(f"Scanning {root} ...")
            self.register_tree(root)
            self.logger.info(f"Done. Watching {len(self._keys)} directories")

    def register_directory(self, path: Union[str, Path]) -> Optional[WatchKey]:
        """
        Register a single directory

        Args:
            path: Directory to register

        Returns:
            Watch key, or None if the directory is filtered out

        Raises:
            OSError: If the directory cannot be watched
        """
        directory = Path(os.path.abspath(path))
        if not is_eligible(directory, self.directory_filter):
            return None

        key = self.service.register(directory, WATCHED_KINDS, self.sensitivity)

        prev = self._keys.get(key)
        if prev is None:
            self.logger.debug(f"register: {directory}")
        elif prev != directory:
            self.logger.debug(f"update: {prev} -> {directory}")
            self._paths.pop(prev, None)

        # A new key for a known path supersedes the stale one
        stale = self._paths.get(directory)
        if stale is not None and stale is not key:
            self._keys.pop(stale, None)

        self._keys[key] = directory
        self._paths[directory] = key
        return key

    def register_tree(self, root: Union[str, Path]) -> None:
        """
        Register a directory and all of its sub-directories

        Symbolic links are not followed. Directories registered before a
        failure stay registered.

        Args:
            root: Top of the tree

        Raises:
            OSError: If any directory in the tree cannot be read or watched
        """
        # One watch for the whole tree, even when root itself is filtered out
        self.service.watch_tree(root, self.sensitivity)
        for dirpath, _dirnames, _filenames in os.walk(root, onerror=_raise_walk_error):
            self.register_directory(dirpath)

    def path_of(self, key: WatchKey) -> Optional[Path]:
        return self._keys.get(key)

    def key_of(self, path: Union[str, Path]) -> Optional[WatchKey]:
        return self._paths.get(Path(os.path.abspath(path)))

    def retire(self, key: WatchKey):
        """Forget a key the watch service reported as invalid"""
        directory = self._keys.pop(key, None)
        if directory is None:
            return
        if self._paths.get(directory) is key:
            del self._paths[directory]
        self.logger.info(f"No longer watching: {directory}")

    def is_empty(self) -> bool:
        return not self._keys

    def paths(self) -> List[Path]:
        return sorted(self._keys.values())

    def __len__(self):
        return len(self._keys)

    def __contains__(self, path) -> bool:
        return Path(os.path.abspath(path)) in self._paths
