"""
Services Module

Provides the building blocks used by the device loops: image synthesis,
local image storage, Kafka topic administration and event publishing.

DeviceService (the host-side registrar) depends on the simulation package
and is imported from its module directly:

    from services.device_service import DeviceService
"""

from .event_publisher import ConnectionState, EventPublisher
from .image_generator import GeneratedImage, ImageGenerator
from .kafka_admin_service import KafkaAdminService
from .storage_service import StorageRecord, StorageService

__all__ = [
    'ConnectionState',
    'EventPublisher',
    'GeneratedImage',
    'ImageGenerator',
    'KafkaAdminService',
    'StorageRecord',
    'StorageService',
]
