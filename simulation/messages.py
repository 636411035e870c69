"""
Command Channel Messages

Typed messages exchanged between the host (DeviceService) and the device
worker, plus their dict wire shapes:

Inbound:  {"type": "add-device", "deviceId": ...}
          {"type": "remove-device", "deviceId": ...}
Outbound: {"type": "event-sent", "deviceId": ..., "timestamp": ...}
          {"type": "device-removed", "deviceId": ..., "success": bool}
          {"type": "error", "deviceId": ... (optional), "error": ...}
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

ADD_DEVICE = "add-device"
REMOVE_DEVICE = "remove-device"
EVENT_SENT = "event-sent"
DEVICE_REMOVED = "device-removed"
ERROR = "error"


class UnknownMessageError(ValueError):
    """Raised for a command whose type the worker does not understand."""

    def __init__(self, message_type: Any):
        super().__init__(f"Unknown message type: {message_type}")
        self.message_type = message_type


# -----------------------------------------------------------------------------
# Commands (host -> worker)
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class AddDevice:
    device_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": ADD_DEVICE, "deviceId": self.device_id}


@dataclass(frozen=True)
class RemoveDevice:
    device_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": REMOVE_DEVICE, "deviceId": self.device_id}


Command = Union[AddDevice, RemoveDevice]


def parse_command(message: Dict[str, Any]) -> Command:
    """
    Decode an inbound dict into a command.

    Raises:
        UnknownMessageError: If the type is not a known command
        ValueError: If deviceId is missing or not a non-empty string
    """
    message_type = message.get("type")
    if message_type not in (ADD_DEVICE, REMOVE_DEVICE):
        raise UnknownMessageError(message_type)

    device_id = message.get("deviceId")
    if not isinstance(device_id, str) or not device_id:
        raise ValueError(f"{message_type} requires a non-empty deviceId")

    if message_type == ADD_DEVICE:
        return AddDevice(device_id)
    return RemoveDevice(device_id)


# -----------------------------------------------------------------------------
# Reports (worker -> host)
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class EventSent:
    device_id: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": EVENT_SENT, "deviceId": self.device_id, "timestamp": self.timestamp}


@dataclass(frozen=True)
class DeviceRemoved:
    device_id: str
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"type": DEVICE_REMOVED, "deviceId": self.device_id, "success": self.success}


@dataclass(frozen=True)
class WorkerError:
    error: str
    device_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": ERROR, "error": self.error}
        if self.device_id is not None:
            data["deviceId"] = self.device_id
        return data


Report = Union[EventSent, DeviceRemoved, WorkerError]


def parse_report(message: Dict[str, Any]) -> Report:
    """Decode an outbound dict back into a report."""
    message_type = message.get("type")
    if message_type == EVENT_SENT:
        return EventSent(message["deviceId"], message["timestamp"])
    if message_type == DEVICE_REMOVED:
        return DeviceRemoved(message["deviceId"], bool(message["success"]))
    if message_type == ERROR:
        return WorkerError(message.get("error", ""), message.get("deviceId"))
    raise UnknownMessageError(message_type)
