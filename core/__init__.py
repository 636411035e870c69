"""
Core Module for the Device Event Emitter

Contains core infrastructure components: exceptions and logging.
"""

__version__ = "1.0.0"

from .exceptions import (
    ApplicationException,
    DeviceAlreadyExistsError,
    DeviceNotFoundError,
    ImageGenerationError,
    PersistenceError,
    PublishError,
    BrokerConnectionError,
)
from .logging_config import setup_logging, get_logger, get_request_id

__all__ = [
    '__version__',
    'ApplicationException',
    'DeviceAlreadyExistsError',
    'DeviceNotFoundError',
    'ImageGenerationError',
    'PersistenceError',
    'PublishError',
    'BrokerConnectionError',
    'setup_logging',
    'get_logger',
    'get_request_id',
]
