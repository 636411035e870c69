"""
Emitter Configuration Loader

Provides configuration management for the device event emitter.
Supports YAML file configuration with .env file and environment variable overrides.

Configuration Loading Priority (highest to lowest):
1. Programmatic overrides (e.g. command-line flags, tests)
2. Environment variables (e.g. KAFKA_TOPIC=camera-events)
3. .env file values
4. YAML configuration file
5. Built-in defaults

Usage:
    from config.emitter_config import EmitterConfig, get_emitter_config

    # Using the shared instance
    topic = get_emitter_config().kafka.topic

    # Creating a custom instance with a different config file
    custom_config = EmitterConfig(
        config_file="/path/to/custom.yaml",
        env_file="/path/to/.env"
    )
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationLoadError, ConfigurationValidationError


logger = logging.getLogger(__name__)

_DURATION_UNITS_MS = {
    's': 1000,
    'm': 60 * 1000,
    'h': 60 * 60 * 1000,
    'd': 24 * 60 * 60 * 1000,
}

_MISSING = object()

# Environment names used by earlier deployments of the emitter
LEGACY_ENV_ALIASES = {
    "device.min_interval_ms": "MIN_EVENT_INTERVAL",
    "device.max_interval_ms": "MAX_EVENT_INTERVAL",
    "storage.save_images": "SAVE_IMAGES",
    "storage.tmp_folder": "TMP_FOLDER",
    "storage.timezone": "IMAGE_TIMEZONE",
}


def parse_duration_ms(value: Union[int, float, str]) -> int:
    """
    Convert a retention value to milliseconds.

    Accepts plain milliseconds (3600000 or "3600000") or a duration string
    with a single unit suffix: 30s, 15m, 1h, 7d.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    if re.fullmatch(r"-?\d+", text):
        return int(text)

    match = re.fullmatch(r"(\d+)([smhd])", text)
    if not match:
        raise ValueError("Invalid time format. Use format like: 1h, 30m, 60s, 1d")

    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS_MS[unit]


# =============================================================================
# Configuration Data Classes
# =============================================================================

@dataclass
class KafkaConfig:
    """Kafka producer and topic provisioning configuration."""
    client_id: str = "device-event-producer"
    brokers: List[str] = field(default_factory=lambda: ["localhost:9092"])
    topic: str = "device-events"
    retention_ms: int = 3600000
    retention_bytes: int = -1
    num_partitions: int = 3
    replication_factor: int = 1
    segment_ms: int = 300000
    delete_retention_ms: int = 60000
    # Image payloads are large; keep request size and timeout generous
    max_request_size: int = 10485760
    request_timeout_ms: int = 30000
    retry_backoff_ms: int = 300

    @property
    def producer_client_id(self) -> str:
        return f"{self.client_id}-worker"

    @property
    def admin_client_id(self) -> str:
        return f"{self.client_id}-admin"

    @property
    def retention_hours(self) -> float:
        return self.retention_ms / 3600000

    @property
    def bootstrap_servers(self) -> str:
        """Comma-joined broker list as accepted by aiokafka."""
        return ",".join(self.brokers)


@dataclass
class DeviceConfig:
    """Per-device emission timing."""
    min_interval_ms: int = 3000
    max_interval_ms: int = 10000
    initial_devices: List[str] = field(default_factory=list)


@dataclass
class StorageConfig:
    """Local image store configuration."""
    save_images: bool = False
    tmp_folder: str = "./tmp/images"
    timezone: str = "UTC"
    max_age_hours: float = 24
    cleanup_interval_minutes: float = 0

    @property
    def cleanup_enabled(self) -> bool:
        return self.save_images and self.cleanup_interval_minutes > 0


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file_enabled: bool = False
    file_path: str = "logs"
    file_name: str = "device-emitter.log"
    file_max_size_mb: int = 10
    file_backup_count: int = 5
    colored_console: bool = True


# =============================================================================
# Main Configuration Class
# =============================================================================

class EmitterConfig:
    """
    Device Event Emitter Configuration Manager.

    Loads configuration from YAML file with support for .env file and
    environment variable overrides. Validates configuration on startup.

    Attributes:
        kafka: Broker connection, topic and producer configuration
        device: Emission interval window and devices started at boot
        storage: Local image persistence and retention sweep
        logging: Logging configuration
    """

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        env_file: Optional[Union[str, Path]] = None,
        validate: bool = True,
        overrides: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the configuration manager.

        Args:
            config_file: Path to YAML configuration file. Defaults to
                         config/emitter_settings.yaml
            env_file: Path to .env file. Defaults to .env in current directory
            validate: Whether to validate configuration on load (default: True)
            overrides: Nested dict of values that win over every other source
        """
        self._config_file = config_file
        self._env_file = env_file
        self._overrides: Dict[str, Any] = overrides or {}
        self._raw_config: Dict[str, Any] = {}

        self.kafka = KafkaConfig()
        self.device = DeviceConfig()
        self.storage = StorageConfig()
        self.logging = LoggingConfig()

        self._load_configuration()

        if validate:
            self.validate()

    def _load_configuration(self) -> None:
        """Load configuration from all sources."""
        # .env first, it only fills variables not already in the environment
        self._load_env_file()
        self._load_yaml_config()
        self._apply_configuration()

    def _load_env_file(self) -> None:
        """Load environment variables from .env file."""
        if self._env_file:
            env_path = Path(self._env_file)
        else:
            cwd_env = Path.cwd() / ".env"
            env_path = cwd_env if cwd_env.exists() else None

        if env_path and env_path.exists():
            try:
                load_dotenv(env_path, override=False)
                logger.info(f"Loaded environment from: {env_path}")
            except Exception as e:
                raise ConfigurationLoadError(
                    source=str(env_path),
                    reason=f"Failed to parse .env file: {e}",
                    details=str(e)
                )

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file."""
        if self._config_file:
            config_path = Path(self._config_file)
        else:
            config_path = Path(__file__).parent / "emitter_settings.yaml"

        if not config_path.exists():
            logger.warning(f"Configuration file not found: {config_path}, using defaults")
            self._raw_config = {}
            return

        try:
            with open(config_path, 'r') as f:
                self._raw_config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from: {config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationLoadError(
                source=str(config_path),
                reason=f"Invalid YAML syntax: {e}",
                details=str(e)
            )
        except IOError as e:
            raise ConfigurationLoadError(
                source=str(config_path),
                reason=f"Failed to read file: {e}",
                details=str(e)
            )

    @staticmethod
    def _lookup(source: Dict[str, Any], key: str) -> Any:
        """Walk a dot-notation key through nested dicts; returns a sentinel when absent."""
        value: Any = source
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return _MISSING
        return value

    def _get_value(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value honouring the loading priority.

        Args:
            key: Dot-notation key (e.g., "kafka.topic")
            default: Default value if not found

        Returns:
            Configuration value (strings from the environment are type-parsed)
        """
        value = self._lookup(self._overrides, key)
        if value is not _MISSING:
            return value

        # SECTION_KEY format, then the legacy name if one exists
        env_names = [key.upper().replace('.', '_')]
        if key in LEGACY_ENV_ALIASES:
            env_names.append(LEGACY_ENV_ALIASES[key])
        for env_key in env_names:
            env_value = os.environ.get(env_key)
            if env_value is not None and env_value != "":
                return self._parse_value(env_value)

        value = self._lookup(self._raw_config, key)
        if value is not _MISSING:
            return value

        return default

    def _parse_value(self, value: str) -> Any:
        """Parse a string value to appropriate type."""
        if value.lower() in ('true', 'yes'):
            return True
        if value.lower() in ('false', 'no'):
            return False

        try:
            if '.' in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ('true', 'yes', '1', 'on')
        return bool(value)

    @staticmethod
    def _as_list(value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(',') if item.strip()]
        if not isinstance(value, (list, tuple, set)):
            # A lone scalar, e.g. DEVICE_INITIAL_DEVICES=101 parsed as an int
            return [str(value)]
        return [str(item).strip() for item in value if str(item).strip()]

    def _field(self, key: str, default: Any, convert) -> Any:
        """Read a value and coerce it, reporting the offending key on failure."""
        value = self._get_value(key, default)
        try:
            return convert(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationLoadError(
                field=key,
                reason=f"Cannot interpret {value!r}: {e}",
                details=str(e)
            )

    def _apply_configuration(self) -> None:
        """Apply loaded configuration to dataclass instances."""
        defaults = KafkaConfig()
        self.kafka = KafkaConfig(
            client_id=self._field("kafka.client_id", defaults.client_id, str),
            brokers=self._field("kafka.brokers", defaults.brokers, self._as_list),
            topic=self._field("kafka.topic", defaults.topic, str),
            retention_ms=self._field("kafka.retention_ms", defaults.retention_ms, parse_duration_ms),
            retention_bytes=self._field("kafka.retention_bytes", defaults.retention_bytes, int),
            num_partitions=self._field("kafka.num_partitions", defaults.num_partitions, int),
            replication_factor=self._field("kafka.replication_factor", defaults.replication_factor, int),
            segment_ms=self._field("kafka.segment_ms", defaults.segment_ms, parse_duration_ms),
            delete_retention_ms=self._field(
                "kafka.delete_retention_ms", defaults.delete_retention_ms, parse_duration_ms
            ),
            max_request_size=self._field("kafka.max_request_size", defaults.max_request_size, int),
            request_timeout_ms=self._field("kafka.request_timeout_ms", defaults.request_timeout_ms, int),
            retry_backoff_ms=self._field("kafka.retry_backoff_ms", defaults.retry_backoff_ms, int),
        )

        self.device = DeviceConfig(
            min_interval_ms=self._field("device.min_interval_ms", 3000, int),
            max_interval_ms=self._field("device.max_interval_ms", 10000, int),
            initial_devices=self._field("device.initial_devices", [], self._as_list),
        )

        self.storage = StorageConfig(
            save_images=self._field("storage.save_images", False, self._as_bool),
            tmp_folder=self._field("storage.tmp_folder", "./tmp/images", str),
            timezone=self._field("storage.timezone", "UTC", str),
            max_age_hours=self._field("storage.max_age_hours", 24, float),
            cleanup_interval_minutes=self._field("storage.cleanup_interval_minutes", 0, float),
        )

        log_file = self._get_value("logging.file", {}) or {}
        self.logging = LoggingConfig(
            level=str(self._get_value("logging.level", "INFO")).upper(),
            file_enabled=self._as_bool(log_file.get("enabled", False)),
            file_path=log_file.get("path", "logs"),
            file_name=log_file.get("filename", "device-emitter.log"),
            file_max_size_mb=int(log_file.get("max_size_mb", 10)),
            file_backup_count=int(log_file.get("backup_count", 5)),
            colored_console=self._as_bool(self._get_value("logging.colored_console", True)),
        )

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises:
            ConfigurationValidationError: If validation fails
        """
        errors: List[str] = []

        if not self.kafka.brokers:
            errors.append("kafka.brokers must list at least one host:port")
        if not self.kafka.topic:
            errors.append("kafka.topic is required")
        if self.kafka.retention_ms <= 0 and self.kafka.retention_ms != -1:
            errors.append(f"kafka.retention_ms must be positive or -1, got {self.kafka.retention_ms}")
        if self.kafka.num_partitions < 1:
            errors.append(f"kafka.num_partitions must be >= 1, got {self.kafka.num_partitions}")
        if self.kafka.replication_factor < 1:
            errors.append(f"kafka.replication_factor must be >= 1, got {self.kafka.replication_factor}")

        if self.device.min_interval_ms < 0:
            errors.append(f"device.min_interval_ms must be >= 0, got {self.device.min_interval_ms}")
        if self.device.max_interval_ms < self.device.min_interval_ms:
            errors.append(
                f"device.max_interval_ms ({self.device.max_interval_ms}) must be >= "
                f"device.min_interval_ms ({self.device.min_interval_ms})"
            )

        try:
            ZoneInfo(self.storage.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"storage.timezone is not a known time zone: {self.storage.timezone!r}")
        if self.storage.max_age_hours <= 0:
            errors.append(f"storage.max_age_hours must be > 0, got {self.storage.max_age_hours}")
        if self.storage.cleanup_interval_minutes < 0:
            errors.append(
                f"storage.cleanup_interval_minutes must be >= 0, got {self.storage.cleanup_interval_minutes}"
            )

        if errors:
            raise ConfigurationValidationError(errors=errors)

        logger.info("Configuration validation passed")

    def reload(self) -> None:
        """Reload configuration from files."""
        self._load_configuration()
        self.validate()
        logger.info("Configuration reloaded")

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "kafka": {
                "client_id": self.kafka.client_id,
                "brokers": list(self.kafka.brokers),
                "topic": self.kafka.topic,
                "retention_ms": self.kafka.retention_ms,
                "num_partitions": self.kafka.num_partitions,
                "replication_factor": self.kafka.replication_factor,
            },
            "device": {
                "min_interval_ms": self.device.min_interval_ms,
                "max_interval_ms": self.device.max_interval_ms,
                "initial_devices": list(self.device.initial_devices),
            },
            "storage": {
                "save_images": self.storage.save_images,
                "tmp_folder": self.storage.tmp_folder,
                "timezone": self.storage.timezone,
                "max_age_hours": self.storage.max_age_hours,
                "cleanup_interval_minutes": self.storage.cleanup_interval_minutes,
            },
            "logging": {
                "level": self.logging.level,
            },
        }

    def __repr__(self) -> str:
        return (
            f"EmitterConfig("
            f"brokers={self.kafka.brokers!r}, "
            f"topic={self.kafka.topic!r}, "
            f"interval={self.device.min_interval_ms}-{self.device.max_interval_ms}ms, "
            f"save_images={self.storage.save_images!r})"
        )


# =============================================================================
# Singleton Instance
# =============================================================================

_emitter_config: Optional[EmitterConfig] = None


def get_emitter_config(
    config_file: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    validate: bool = True
) -> EmitterConfig:
    """
    Get the shared emitter configuration instance.

    Args:
        config_file: Path to YAML configuration file (only used on first call)
        env_file: Path to .env file (only used on first call)
        validate: Whether to validate configuration

    Returns:
        EmitterConfig shared instance
    """
    global _emitter_config
    if _emitter_config is None:
        _emitter_config = EmitterConfig(
            config_file=config_file,
            env_file=env_file,
            validate=validate
        )
    return _emitter_config
