"""
Device Simulation Module

Runs the simulated camera devices: one random-interval event loop per device,
hosted in an isolated worker thread and driven by add/remove commands.

Components:
- DeviceScheduler: Per-device emission loops sharing one publisher
- DeviceWorker: Thread + event loop hosting the scheduler
- DeviceEvent: The published event record
- messages: Command/report codec between host and worker
"""

from .device_worker import DeviceWorker
from .event_payload import DeviceEvent, EventMetadata, build_event
from .messages import (
    AddDevice,
    DeviceRemoved,
    EventSent,
    RemoveDevice,
    UnknownMessageError,
    WorkerError,
    parse_command,
    parse_report,
)
from .scheduler import DeviceLoop, DeviceScheduler

__all__ = [
    'AddDevice',
    'DeviceEvent',
    'DeviceLoop',
    'DeviceRemoved',
    'DeviceScheduler',
    'DeviceWorker',
    'EventMetadata',
    'EventSent',
    'RemoveDevice',
    'UnknownMessageError',
    'WorkerError',
    'build_event',
    'parse_command',
    'parse_report',
]
