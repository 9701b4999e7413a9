# dirwatcher/watch/dispatch.py

"""
Callback command templates and their execution
"""
import re
import shlex
import logging
import subprocess
from pathlib import Path
from typing import Optional, Union

from .events import EventType

logger = logging.getLogger(__name__)

FILE_TOKEN = "%file%"
EVENT_TOKEN = "%event%"

_TOKEN_PATTERN = re.compile(r"%(file|event)%")


class CommandTemplate:
    """
    Command line with %file% and %event% placeholders
    """

    def __init__(self, template: str):
        self.template = template

    @classmethod
    def from_string(cls, template: Optional[str]) -> Optional["CommandTemplate"]:
        if not template:
            return None
        return cls(template)

    def render(self, path: Union[str, Path], event_type: EventType) -> str:
        """
        Substitute every placeholder occurrence

        Both tokens are replaced in a single pass, so a path that happens
        to contain a token is inserted verbatim.

        Args:
            path: Affected path, replaces %file%
            event_type: Event type, its name replaces %event%

        Returns:
            Concrete command line
        """
        values = {
            "file": str(path),
            "event": event_type.value,
        }
        return _TOKEN_PATTERN.sub(lambda m: values[m.group(1)], self.template)

    def __repr__(self):
        return f"CommandTemplate({self.template!r})"


class ProcessDispatcher:
    """
    Runs callback commands synchronously and relays their output to logging
    """

    def __init__(self, output_logger: Optional[logging.Logger] = None):
        """
        Initialize dispatcher

        Args:
            output_logger: Logger receiving each stdout line of the command
        """
        self.output_logger = output_logger or logging.getLogger("dirwatcher.callback")
        self.stats = {
            'executed': 0,
            'failed': 0,
        }

    def dispatch(self, command: str) -> Optional[int]:
        """
        Execute a command and wait for it to finish

        Never raises on command failures, they are logged. An interrupt
        kills the command and propagates.

        Args:
            command: Command line, split with POSIX shell rules (no shell)

        Returns:
            Exit status, or None if the command could not be started
        """
        logger.debug(f"exec: {command}")

        try:
            args = shlex.split(command)
        except ValueError as e:
            logger.error(f"Cannot parse callback command '{command}': {e}")
            self.stats['failed'] += 1
            return None

        if not args:
            logger.warning("Callback command is empty, skipping")
            self.stats['failed'] += 1
            return None

        try:
            with subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
            ) as proc:
                try:
                    for line in proc.stdout:
                        self.output_logger.info(line.rstrip("\n"))
                    returncode = proc.wait()
                except KeyboardInterrupt:
                    # Do not leave the command running behind a shutdown
                    proc.kill()
                    raise
        except OSError as e:
            logger.error(f"Failed to run callback '{command}': {e}")
            self.stats['failed'] += 1
            return None

        self.stats['executed'] += 1
        if returncode != 0:
            logger.warning(f"Callback '{command}' exited with status {returncode}")
            self.stats['failed'] += 1
        return returncode
