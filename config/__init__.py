"""
Configuration Module for the Device Event Emitter

Provides centralized configuration management with YAML files and environment variable support.
"""

from .emitter_config import (
    EmitterConfig,
    KafkaConfig,
    DeviceConfig,
    StorageConfig,
    LoggingConfig,
    get_emitter_config,
    parse_duration_ms,
)
from .exceptions import ConfigurationLoadError, ConfigurationValidationError

__all__ = [
    'EmitterConfig',
    'KafkaConfig',
    'DeviceConfig',
    'StorageConfig',
    'LoggingConfig',
    'get_emitter_config',
    'parse_duration_ms',
    'ConfigurationLoadError',
    'ConfigurationValidationError',
]
