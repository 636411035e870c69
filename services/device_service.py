"""
Device Service

Host-side registrar for simulated devices. Keeps the authoritative set of
registered device ids, forwards add/remove commands to the device worker and
consumes the worker's reports on a listener thread.

Usage:
    from services.device_service import DeviceService
    from config import get_emitter_config

    service = DeviceService(get_emitter_config())
    service.add_device("CAM-1")
    service.get_devices()          # ['CAM-1']
    service.remove_device("CAM-1")
    service.shutdown()
"""

import asyncio
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from config.emitter_config import EmitterConfig, get_emitter_config
from core.exceptions import DeviceAlreadyExistsError, DeviceNotFoundError
from core.time_utils import to_iso_timestamp
from services.kafka_admin_service import KafkaAdminService
from simulation.device_worker import DeviceWorker
from simulation.messages import (
    ADD_DEVICE,
    DEVICE_REMOVED,
    ERROR,
    EVENT_SENT,
    REMOVE_DEVICE,
)

logger = logging.getLogger(__name__)

ReportListener = Callable[[Dict[str, Any]], None]


@dataclass
class DeviceStatus:
    """Host-side counters for one registered device."""
    device_id: str
    added_at: str
    events_sent: int = 0
    errors: int = 0
    last_event_at: Optional[str] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "status": "active",
            "addedAt": self.added_at,
            "eventsSent": self.events_sent,
            "errors": self.errors,
            "lastEventAt": self.last_event_at,
            "lastError": self.last_error,
        }


class DeviceService:
    """Registers devices and relays commands to the device worker."""

    # Listener poll interval while waiting for reports
    REPORT_POLL_SECONDS = 0.2

    def __init__(
        self,
        config: Optional[EmitterConfig] = None,
        worker: Optional[DeviceWorker] = None,
        autostart: bool = True,
        admin: Optional[KafkaAdminService] = None
    ):
        """
        Initialize the service.

        Args:
            config: Emitter settings (defaults to the global configuration)
            worker: Device worker to drive (built from config when omitted)
            autostart: Start the worker and report listener immediately
            admin: Topic admin used for topic inspection (built from config when omitted)
        """
        self._config = config or get_emitter_config()
        self._worker = worker or DeviceWorker(self._config)
        self._admin = admin or KafkaAdminService(self._config.kafka)
        self._devices: Dict[str, DeviceStatus] = {}
        self._lock = threading.Lock()
        self._listeners: List[ReportListener] = []

        self._listener_thread: Optional[threading.Thread] = None
        self._stop_listening = threading.Event()
        self._started = False

        if autostart:
            self.start()

    def start(self) -> None:
        """Start the device worker and the report listener thread."""
        if self._started:
            return
        self._worker.start()
        self._stop_listening.clear()
        self._listener_thread = threading.Thread(
            target=self._listen_for_reports, name="device-report-listener", daemon=True
        )
        self._listener_thread.start()
        self._started = True
        logger.info("Device service started")

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    @staticmethod
    def _normalize_device_id(device_id: Any) -> str:
        if not isinstance(device_id, str) or not device_id.strip():
            raise ValueError("deviceId must be a non-empty string")
        return device_id.strip()

    def add_device(self, device_id: str) -> Dict[str, Any]:
        """
        Register a device and start its event loop.

        Raises:
            ValueError: If device_id is empty
            DeviceAlreadyExistsError: If the device is already registered
        """
        device_id = self._normalize_device_id(device_id)
        with self._lock:
            if device_id in self._devices:
                raise DeviceAlreadyExistsError(device_id=device_id)
            # Stamped before the command is posted so the first tick is never older
            status = DeviceStatus(device_id=device_id, added_at=to_iso_timestamp())
            self._worker.post_message({"type": ADD_DEVICE, "deviceId": device_id})
            self._devices[device_id] = status

        logger.info(f"Device {device_id} registered")
        return {"message": "Device added and event loop started", "deviceId": device_id}

    def remove_device(self, device_id: str) -> Dict[str, Any]:
        """
        Unregister a device and stop its event loop.

        Raises:
            ValueError: If device_id is empty
            DeviceNotFoundError: If the device is not registered
        """
        device_id = self._normalize_device_id(device_id)
        with self._lock:
            if device_id not in self._devices:
                raise DeviceNotFoundError(device_id=device_id)
            self._worker.post_message({"type": REMOVE_DEVICE, "deviceId": device_id})
            del self._devices[device_id]

        logger.info(f"Device {device_id} unregistered")
        return {"message": "Device removed and event loop stopped", "deviceId": device_id}

    def get_devices(self) -> List[str]:
        with self._lock:
            return list(self._devices)

    def get_device_count(self) -> int:
        with self._lock:
            return len(self._devices)

    def get_device_status(self, device_id: str) -> Dict[str, Any]:
        """
        Raises:
            DeviceNotFoundError: If the device is not registered
        """
        with self._lock:
            status = self._devices.get(device_id)
            if status is None:
                raise DeviceNotFoundError(device_id=device_id)
            data = status.to_dict()
        data["timestamp"] = to_iso_timestamp()
        return data

    def get_kafka_topic_info(self) -> Dict[str, Any]:
        """
        Describe the configured event topic on the broker.

        Raises:
            BrokerConnectionError: If the broker cannot be reached or rejects the request
        """
        kafka = self._config.kafka
        info = asyncio.run(self._admin.get_topic_info(kafka.topic))
        return {
            "topic": kafka.topic,
            "retentionMs": kafka.retention_ms,
            "retentionHours": kafka.retention_hours,
            "metadata": info["metadata"],
            "configs": info["configs"],
            "timestamp": to_iso_timestamp(),
        }

    def add_listener(self, callback: ReportListener) -> None:
        """Subscribe to every worker report (called on the listener thread)."""
        self._listeners.append(callback)

    # -------------------------------------------------------------------------
    # Worker reports
    # -------------------------------------------------------------------------

    def _listen_for_reports(self) -> None:
        while not self._stop_listening.is_set():
            try:
                report = self._worker.reports.get(timeout=self.REPORT_POLL_SECONDS)
            except queue.Empty:
                continue
            self.handle_worker_message(report)
        self._drain_reports()

    def _drain_reports(self) -> None:
        while True:
            try:
                report = self._worker.reports.get_nowait()
            except queue.Empty:
                return
            self.handle_worker_message(report)

    @staticmethod
    def _is_current(status: DeviceStatus, timestamp: Optional[str]) -> bool:
        # ISO-8601 UTC strings of one format order lexically
        return timestamp is None or timestamp >= status.added_at

    def handle_worker_message(self, message: Dict[str, Any]) -> None:
        """
        Log a worker report, update device counters and notify listeners.

        An event stamped before the device was (re-)added belongs to a tick of
        its previous registration and is not counted. Error reports carry no
        timestamp, so a late error from such a tick is still counted.
        """
        message_type = message.get("type")
        device_id = message.get("deviceId")

        with self._lock:
            status = self._devices.get(device_id) if device_id else None
            if message_type == EVENT_SENT:
                if status is not None and self._is_current(status, message.get("timestamp")):
                    status.events_sent += 1
                    status.last_event_at = message.get("timestamp")
            elif message_type == ERROR:
                if status is not None:
                    status.errors += 1
                    status.last_error = message.get("error")

        if message_type == EVENT_SENT:
            logger.info(f"Event sent for device {device_id} at {message.get('timestamp')}")
        elif message_type == DEVICE_REMOVED:
            logger.info(f"Device {device_id} removal confirmed (success={message.get('success')})")
        elif message_type == ERROR:
            if device_id:
                logger.error(f"Worker error for device {device_id}: {message.get('error')}")
            else:
                logger.error(f"Worker error: {message.get('error')}")
        else:
            logger.warning(f"Unknown worker message: {message}")

        for callback in list(self._listeners):
            try:
                callback(message)
            except Exception:
                logger.exception("Report listener failed")

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def shutdown(self, timeout: float = 30.0) -> bool:
        """
        Stop every device loop and the worker, then the listener.

        Returns:
            True if the worker stopped within the timeout
        """
        if not self._started:
            return True

        with self._lock:
            device_count = len(self._devices)
        logger.info(f"Shutting down device service ({device_count} devices)")

        stopped = self._worker.terminate(timeout)

        self._stop_listening.set()
        if self._listener_thread is not None:
            self._listener_thread.join(timeout)

        with self._lock:
            self._devices.clear()
        self._started = False
        logger.info("Device service stopped")
        return stopped
