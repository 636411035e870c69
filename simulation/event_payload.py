"""
Device Event Payload

The immutable record produced once per tick and its JSON wire form as
published to Kafka (keyed by deviceId).
"""

import random
from dataclasses import dataclass
from typing import Any, Dict, Optional

from services.image_generator import GeneratedImage
from services.storage_service import StorageRecord

EVENT_TYPE = "camera_capture"
RECORDING_MODES = ("continuous", "motion_detected")


@dataclass(frozen=True)
class EventMetadata:
    """Simulated device telemetry attached to every event."""
    location: str
    battery: int
    temperature: float
    humidity: float
    recording_mode: str
    camera_status: str = "active"

    @classmethod
    def random(cls, rng: random.Random) -> 'EventMetadata':
        return cls(
            location=f"zone_{rng.randint(1, 5)}",
            battery=rng.randint(1, 100),
            temperature=round(rng.uniform(10, 60), 1),
            humidity=round(rng.uniform(20, 100), 1),
            recording_mode=rng.choice(RECORDING_MODES),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "battery": self.battery,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "cameraStatus": self.camera_status,
            "recordingMode": self.recording_mode,
        }


@dataclass(frozen=True)
class DeviceEvent:
    """One synthetic camera capture; never mutated after construction."""
    device_id: str
    timestamp: str
    value: float
    image: GeneratedImage
    metadata: EventMetadata
    saved: Optional[StorageRecord] = None
    event_type: str = EVENT_TYPE

    def to_dict(self) -> Dict[str, Any]:
        """Broker message value."""
        return {
            "deviceId": self.device_id,
            "timestamp": self.timestamp,
            "value": self.value,
            "eventType": self.event_type,
            "image": {
                "base64": self.image.base64,
                "position": self.image.position,
                "dimensions": self.image.dimensions,
                "format": self.image.format,
                "size": self.image.size_bytes,
                "saved": self.saved.to_saved_dict() if self.saved else None,
            },
            "device_text_crop": self.image.text_crop.to_dict(),
            "background_colors": self.image.background_colors_dict(),
            "metadata": self.metadata.to_dict(),
        }


def build_event(
    device_id: str,
    timestamp: str,
    image: GeneratedImage,
    saved: Optional[StorageRecord] = None,
    rng: Optional[random.Random] = None
) -> DeviceEvent:
    """Assemble the event for one tick with a fresh reading and telemetry."""
    rng = rng or random.Random()
    return DeviceEvent(
        device_id=device_id,
        timestamp=timestamp,
        value=round(rng.uniform(0, 100), 2),
        image=image,
        metadata=EventMetadata.random(rng),
        saved=saved,
    )
