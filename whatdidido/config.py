"""Configuration management for What Did I Do.

Settings live in a YAML file and are mapped onto dataclasses, one per
section. Missing keys fall back to the dataclass defaults and unknown keys
are ignored, so older and newer config files both load.

Configuration Sections:
- capture: sampling interval the capture pipeline uses (minutes per sample)
- dashboard: page sizes and the chart top-N
- storage: data directory, database and export locations
- web: JSON API bind address
- logging: level and log file rotation

Example:
    >>> from whatdidido.config import ConfigManager
    >>> config_mgr = ConfigManager()
    >>> config_mgr.config.capture.interval_minutes
    5
    >>> config_mgr.update('capture', 'interval_minutes', 2)
"""

import dataclasses
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class CaptureConfig:
    """Sampling configuration.

    Attributes:
        interval_minutes: Minutes each sample stands for (default: 5). Every
            hours figure is count * interval_minutes / 60.
    """
    interval_minutes: float = 5


@dataclass
class DashboardConfig:
    """Dashboard query sizes.

    Attributes:
        page_size: Samples returned with the day stats (default: 100)
        more_page_size: Samples per "load more" page (default: 50)
        top_categories: Categories plotted per chart bucket (default: 3)
    """
    page_size: int = 100
    more_page_size: int = 50
    top_categories: int = 3


@dataclass
class StorageConfig:
    """Data storage locations.

    Attributes:
        data_dir: Directory holding the database, logs and exports
        db_name: SQLite file name inside data_dir
        export_dir: Export directory; relative paths resolve under data_dir
    """
    data_dir: str = "~/whatdidido-data"
    db_name: str = "whatdidido.db"
    export_dir: str = "exports"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_path / self.db_name

    @property
    def export_path(self) -> Path:
        path = Path(self.export_dir).expanduser()
        return path if path.is_absolute() else self.data_path / path

    @property
    def log_path(self) -> Path:
        return self.data_path / "logs"


@dataclass
class WebConfig:
    """JSON API server configuration.

    Attributes:
        host: Host address to bind to (default: 127.0.0.1)
        port: Port number (default: 55556)
    """
    host: str = "127.0.0.1"
    port: int = 55556


@dataclass
class LoggingConfig:
    """Log output configuration.

    Attributes:
        level: Root log level (default: INFO)
        max_bytes: Rotate combined.log at this size (default: 5 MB)
        backup_count: Rotated files to keep (default: 5)
        console: Also log to stderr (default: True)
    """
    level: str = "INFO"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5
    console: bool = True


@dataclass
class Config:
    """Top-level configuration container."""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


SECTION_TYPES = {f.name: f.type for f in dataclasses.fields(Config)}


class ConfigManager:
    """Loads, saves and updates the YAML configuration file.

    Attributes:
        DEFAULT_PATH: Default configuration file location
        path: Configuration file path in use
        config: Current configuration object

    Example:
        >>> config_mgr = ConfigManager()
        >>> config_mgr.config.web.port = 8080
        >>> config_mgr.save()
    """

    DEFAULT_PATH = Path("~/.config/whatdidido/config.yaml").expanduser()

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path).expanduser() if path else self.DEFAULT_PATH
        self.config = self._load()

    def _load(self) -> Config:
        """Load configuration from the YAML file.

        Invalid YAML or an unreadable file yields the defaults.
        """
        if self.path.exists():
            try:
                with open(self.path) as f:
                    data = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {self.path}")
                return self._dict_to_config(data)
            except (yaml.YAMLError, OSError) as e:
                logger.warning(f"Failed to load config from {self.path}: {e}")
                logger.info("Using default configuration")
                return Config()
        else:
            logger.info(f"No config file at {self.path}, using defaults")
            return Config()

    def _dict_to_config(self, data: dict) -> Config:
        """Build a Config from a dictionary, merging with defaults."""
        def filter_known_fields(data_dict, dataclass_type) -> dict:
            if not isinstance(data_dict, dict):
                return {}
            known_fields = {f.name for f in dataclasses.fields(dataclass_type)}
            unknown = set(data_dict.keys()) - known_fields
            if unknown:
                logger.debug(f"Ignoring unknown config fields: {unknown}")
            return {k: v for k, v in data_dict.items() if k in known_fields}

        if not isinstance(data, dict):
            logger.warning(f"Config file {self.path} is not a mapping, using defaults")
            return Config()

        sections = {
            name: section_type(**filter_known_fields(data.get(name, {}), section_type))
            for name, section_type in SECTION_TYPES.items()
        }
        return Config(**sections)

    def save(self) -> None:
        """Write the current configuration to the YAML file.

        Raises:
            OSError: If the file cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                yaml.dump(
                    asdict(self.config),
                    f,
                    default_flow_style=False,
                    sort_keys=False,
                    indent=2
                )
            logger.info(f"Saved configuration to {self.path}")
        except OSError as e:
            logger.error(f"Failed to save config to {self.path}: {e}")
            raise

    def update(self, section: str, key: str, value) -> bool:
        """Update a single configuration value and save.

        Returns:
            True if the value changed and was saved, False if unchanged or
            the section/key does not exist.
        """
        section_obj = getattr(self.config, section, None)
        if section not in SECTION_TYPES or section_obj is None:
            logger.warning(f"Invalid config section: {section}")
            return False

        if key not in {f.name for f in dataclasses.fields(section_obj)}:
            logger.warning(f"Invalid config key: {section}.{key}")
            return False

        old_value = getattr(section_obj, key)
        if old_value != value:
            setattr(section_obj, key, value)
            self.save()
            logger.info(f"Updated {section}.{key}: {old_value} -> {value}")
            return True

        logger.debug(f"No change for {section}.{key} (already {value})")
        return False

    def to_dict(self) -> dict:
        return asdict(self.config)

    def reload(self) -> None:
        """Re-read the file, picking up external edits."""
        self.config = self._load()
        logger.info("Configuration reloaded")


_default_config_manager: Optional[ConfigManager] = None


def get_config_manager(path: Optional[Path] = None) -> ConfigManager:
    """Get or create the process-wide ConfigManager.

    Args:
        path: Custom config path (only used on the first call)
    """
    global _default_config_manager
    if _default_config_manager is None:
        _default_config_manager = ConfigManager(path)
    return _default_config_manager
