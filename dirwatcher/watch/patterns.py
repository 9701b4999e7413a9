# dirwatcher/watch/patterns.py

"""
Directory eligibility filter
"""
import re
import logging
from pathlib import Path
from typing import Optional, Pattern, Union

from .errors import WatcherConfigError

logger = logging.getLogger(__name__)


class DirectoryFilter:
    """
    Regular expression that a directory path must match in full to be watched
    """

    def __init__(self, pattern: str, case_sensitive: bool = True):
        """
        Initialize directory filter

        Args:
            pattern: Regular expression matched against the whole path string
            case_sensitive: Match case sensitively (default)

        Raises:
            WatcherConfigError: If the expression does not compile
        """
        self.pattern = pattern
        self.case_sensitive = case_sensitive

        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            self.compiled_pattern: Pattern[str] = re.compile(pattern, flags)
        except re.error as e:
            raise WatcherConfigError(f"Invalid filter pattern '{pattern}': {e}") from e

    @classmethod
    def from_string(cls, pattern: Optional[str],
                    case_sensitive: bool = True) -> Optional["DirectoryFilter"]:
        """Build a filter, or return None when no pattern (or an empty one) is given"""
        if not pattern:
            return None
        return cls(pattern, case_sensitive)

    def matches(self, path: Union[str, Path]) -> bool:
        """
        Check whether path is eligible for watching

        Args:
            path: Directory path

        Returns:
            True if the pattern matches the entire path string
        """
        path_str = str(path)
        matched = self.compiled_pattern.fullmatch(path_str) is not None
        logger.debug(f"{path_str} matches: {matched}")
        return matched

    def __repr__(self):
        return f"DirectoryFilter({self.pattern!r})"


def is_eligible(path: Union[str, Path], directory_filter: Optional[DirectoryFilter]) -> bool:
    """Directories are eligible when no filter is set or the filter matches"""
    if directory_filter is None:
        return True
    return directory_filter.matches(path)
