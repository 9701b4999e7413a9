# dirwatcher/utils/config.py

"""
Configuration management for dirwatcher
"""
import json
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, asdict, fields

from ..watch.dispatch import CommandTemplate
from ..watch.errors import WatcherConfigError
from ..watch.patterns import DirectoryFilter

logger = logging.getLogger(__name__)

LOG_FORMATS = ("text", "json", "color")


@dataclass
class WatcherConfig:
    """Watcher configuration"""
    root: Optional[Path] = None
    filter_pattern: Optional[str] = None
    filter_ignore_case: bool = False
    callback: Optional[str] = None
    debug: bool = False

    # Watch service
    polling: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = "text"

    def __post_init__(self):
        if isinstance(self.root, str):
            self.root = Path(self.root) if self.root else None

        # Empty strings mean "not configured"
        if not self.filter_pattern:
            self.filter_pattern = None
        if not self.callback:
            self.callback = None

        if self.log_format not in LOG_FORMATS:
            raise WatcherConfigError(
                f"Unknown log format '{self.log_format}', expected one of {', '.join(LOG_FORMATS)}"
            )

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level

    def compile_filter(self) -> Optional[DirectoryFilter]:
        """Compile the directory filter, None when unset"""
        return DirectoryFilter.from_string(self.filter_pattern, case_sensitive=not self.filter_ignore_case)

    def template(self) -> Optional[CommandTemplate]:
        """Callback command template, None when unset"""
        return CommandTemplate.from_string(self.callback)

    def merge_cli(self, args: Any) -> "WatcherConfig":
        """
        Override settings with the options given on the command line

        Args:
            args: argparse namespace; options left at None are ignored

        Returns:
            self
        """
        overrides = {
            'root': getattr(args, 'watch', None),
            'filter_pattern': getattr(args, 'filter', None),
            'callback': getattr(args, 'callback', None),
            'log_file': getattr(args, 'log_file', None),
            'log_format': getattr(args, 'log_format', None),
        }
        for key, value in overrides.items():
            if value is not None:
                setattr(self, key, value)

        if getattr(args, 'debug', False):
            self.debug = True
        if getattr(args, 'ignore_case', False):
            self.filter_ignore_case = True
        if getattr(args, 'polling', False):
            self.polling = True

        # Re-run normalisation on the merged values
        self.__post_init__()
        return self

    def update_from_dict(self, data: Dict[str, Any]):
        """Update config from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(self)}
        for key, value in data.items():
            if key in known:
                setattr(self, key, value)
            else:
                logger.warning(f"Ignoring unknown configuration key: {key}")
        self.__post_init__()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        data = asdict(self)
        if data['root'] is not None:
            data['root'] = str(data['root'])
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False)

    def save(self, path: Union[str, Path]):
        """Save config to file, YAML or JSON depending on suffix"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            if path.suffix.lower() in ['.yaml', '.yml']:
                f.write(self.to_yaml())
            else:
                f.write(self.to_json())

        logger.info(f"Configuration saved to {path}")


def load_config(path: Optional[Union[str, Path]] = None) -> WatcherConfig:
    """
    Load configuration from a YAML or JSON file

    Args:
        path: Config file; None returns the defaults

    Returns:
        Loaded configuration

    Raises:
        WatcherConfigError: If the file cannot be read or parsed
    """
    config = WatcherConfig()
    if path is None:
        return config

    config_path = Path(path)
    logger.debug(f"Loading configuration from {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as e:
        raise WatcherConfigError(f"Cannot read configuration {config_path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise WatcherConfigError(f"Invalid configuration {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise WatcherConfigError(f"Configuration {config_path} must be a mapping")

    config.update_from_dict(data)
    return config
