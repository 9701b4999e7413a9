"""
Command line interface for dirwatcher
"""
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .utils.config import LOG_FORMATS, WatcherConfig, load_config
from .utils.logger import CALLBACK_LOGGER, get_logger, log_exception, setup_logging
from .watch.dispatch import ProcessDispatcher
from .watch.errors import WatcherConfigError
from .watch.loop import EventLoop
from .watch.registry import WatchSetRegistry
from .watch.service import WatchService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dirwatcher",
        description="Watch a directory tree and run a command for each change",
    )
    parser.add_argument("-w", "--watch", type=Path, metavar="PATH",
                        help="Path to watch within (recursively)")
    parser.add_argument("-f", "--filter", metavar="REGEX",
                        help="Regex filter to only watch specific directories")
    parser.add_argument("-i", "--ignore-case", action="store_true",
                        help="Match the filter regex case-insensitively")
    parser.add_argument("-c", "--callback", metavar="COMMAND",
                        help="Callback to be executed - can contain callback vars (%%file%% | %%event%%)")
    parser.add_argument("-d", "--debug", action="store_true",
                        help="Enables debug logging")
    parser.add_argument("--config", type=Path, metavar="FILE",
                        help="YAML or JSON configuration file")
    parser.add_argument("--polling", action="store_true",
                        help="Poll the filesystem instead of using OS notifications")
    parser.add_argument("--log-file", metavar="FILE",
                        help="Also write logs to this file")
    parser.add_argument("--log-format", choices=LOG_FORMATS,
                        help="Console log format")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config).merge_cli(args)
    except WatcherConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if config.root is None:
        parser.print_help()
        return EXIT_ERROR

    setup_logging(
        log_level=config.effective_log_level,
        log_file=config.log_file,
        log_format=config.log_format,
    )

    return run(config)


def run(config: WatcherConfig) -> int:
    """
    Seed the registry and process events until done

    Args:
        config: Complete configuration with a watch root

    Returns:
        Process exit status
    """
    try:
        directory_filter = config.compile_filter()
    except WatcherConfigError as e:
        logger.error(str(e))
        return EXIT_ERROR

    service = WatchService(use_polling=config.polling)
    try:
        try:
            registry = WatchSetRegistry(service, root=config.root, directory_filter=directory_filter)
        except OSError as e:
            log_exception(logger, e, f"Cannot watch {config.root}")
            return EXIT_ERROR

        if registry.is_empty():
            logger.error(f"No directory under {config.root} matches filter '{config.filter_pattern}'")
            return EXIT_ERROR

        loop = EventLoop(
            service,
            registry,
            template=config.template(),
            dispatcher=ProcessDispatcher(get_logger(CALLBACK_LOGGER)),
        )
        previous_handler = _install_signal_handler()
        try:
            loop.run()
        finally:
            if previous_handler is not None:
                signal.signal(signal.SIGTERM, previous_handler)

        logger.info(f"Stopped after {loop.stats['events_processed']} events")
        return EXIT_OK
    finally:
        service.close()


def _install_signal_handler():
    """SIGTERM ends the loop like Ctrl+C does; returns the previous handler"""
    # Raising is all the handler does, it must not wait on watch service locks
    return signal.signal(signal.SIGTERM, signal.default_int_handler)
