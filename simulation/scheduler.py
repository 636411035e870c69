"""
Device Scheduler

Runs one self-rescheduling asyncio task per active device. Each task loops:
emit an event, draw a random delay in [min_interval_ms, max_interval_ms],
wait that long or until the device's stop event fires, repeat.

A device's next tick only starts after its current tick (including the
publish) has finished, so a device never overlaps with itself. Failures in
one tick are reported for that device and the loop carries on; no device can
stop another.

The scheduler must be driven from a single event loop (the device worker's).
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from config.emitter_config import DeviceConfig, EmitterConfig, StorageConfig
from core.exceptions import ApplicationException, DeviceAlreadyExistsError, DeviceNotFoundError
from core.time_utils import to_iso_timestamp
from services.event_publisher import EventPublisher
from services.image_generator import ImageGenerator
from services.storage_service import StorageService

from .event_payload import DeviceEvent, build_event
from .messages import EventSent, Report, WorkerError

logger = logging.getLogger(__name__)


@dataclass
class DeviceLoop:
    """Schedule handle for one device: its task and cancellation token."""
    device_id: str
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    ticks: int = 0
    delays_ms: List[int] = field(default_factory=list)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()


class DeviceScheduler:
    """
    Owns the map of active devices and drives their emission loops.

    All collaborators are injected so the scheduler can run against fakes.
    """

    # Kept per device for inspection; older delays are dropped
    MAX_RECORDED_DELAYS = 100

    def __init__(
        self,
        device_config: DeviceConfig,
        publisher: EventPublisher,
        image_generator: Optional[ImageGenerator] = None,
        storage: Optional[StorageService] = None,
        report_callback: Optional[Callable[[Report], None]] = None,
        storage_config: Optional[StorageConfig] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the scheduler.

        Args:
            device_config: Interval window
            publisher: Shared event publisher
            image_generator: Frame renderer
            storage: Local image store
            report_callback: Receives EventSent / WorkerError reports
            storage_config: Enables the periodic retention sweep when set
            rng: Random source for intervals and readings
        """
        self._device_config = device_config
        self._publisher = publisher
        self._rng = rng or random.Random()
        self._image_generator = image_generator or ImageGenerator(rng=self._rng)
        self._storage = storage or StorageService(StorageConfig(save_images=False))
        self._report = report_callback or self._log_report
        self._storage_config = storage_config

        self._devices: Dict[str, DeviceLoop] = {}
        self._retiring: Set[asyncio.Task] = set()
        self._sweep_task: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: EmitterConfig,
        report_callback: Optional[Callable[[Report], None]] = None
    ) -> 'DeviceScheduler':
        """Build a scheduler with real collaborators from emitter settings."""
        return cls(
            device_config=config.device,
            publisher=EventPublisher(config.kafka),
            image_generator=ImageGenerator(),
            storage=StorageService(config.storage),
            report_callback=report_callback,
            storage_config=config.storage,
        )

    @staticmethod
    def _log_report(report: Report) -> None:
        logger.debug(f"Report: {report.to_dict()}")

    # -------------------------------------------------------------------------
    # Device map
    # -------------------------------------------------------------------------

    def add_device(self, device_id: str) -> DeviceLoop:
        """
        Register a device and start its loop; the first tick runs immediately.

        Raises:
            DeviceAlreadyExistsError: If the device already has a running loop
        """
        if self._closed:
            raise RuntimeError("Scheduler is shut down")
        if device_id in self._devices:
            raise DeviceAlreadyExistsError(device_id=device_id)

        device_loop = DeviceLoop(device_id=device_id)
        self._devices[device_id] = device_loop
        device_loop.task = asyncio.get_running_loop().create_task(
            self._run_device_loop(device_loop),
            name=f"device-loop-{device_id}",
        )
        logger.info(f"Device {device_id} added, {len(self._devices)} active")
        return device_loop

    def remove_device(self, device_id: str) -> None:
        """
        Stop a device's loop and forget it.

        A tick already in flight completes and still reports.

        Raises:
            DeviceNotFoundError: If the device is not scheduled
        """
        device_loop = self._devices.pop(device_id, None)
        if device_loop is None:
            raise DeviceNotFoundError(device_id=device_id)

        device_loop.stop_event.set()
        if device_loop.task is not None and not device_loop.task.done():
            self._retiring.add(device_loop.task)
            device_loop.task.add_done_callback(self._retiring.discard)
        logger.info(f"Device {device_id} removed, {len(self._devices)} active")

    def list_devices(self) -> List[str]:
        return list(self._devices)

    def count(self) -> int:
        return len(self._devices)

    def get_loop(self, device_id: str) -> Optional[DeviceLoop]:
        return self._devices.get(device_id)

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------

    def next_interval_ms(self) -> int:
        """Uniform random delay in the configured window, inclusive."""
        return self._rng.randint(self._device_config.min_interval_ms, self._device_config.max_interval_ms)

    async def emit_event(self, device_id: str) -> DeviceEvent:
        """Generate, optionally persist, and publish one event."""
        timestamp = to_iso_timestamp()
        image = await asyncio.to_thread(self._image_generator.generate_image, device_id)

        saved = None
        if self._storage.save_images:
            saved = await asyncio.to_thread(
                self._storage.save_image, image.jpeg_bytes, device_id, image.position, timestamp
            )

        event = build_event(device_id, timestamp, image, saved=saved, rng=self._rng)
        await self._publisher.publish(event)
        return event

    async def _tick(self, device_id: str) -> None:
        try:
            event = await self.emit_event(device_id)
        except ApplicationException as e:
            logger.warning(f"Tick failed for device {device_id}: {e}")
            self._report(WorkerError(error=str(e), device_id=device_id))
        except Exception as e:
            logger.exception(f"Unexpected error in tick for device {device_id}")
            self._report(WorkerError(error=f"{type(e).__name__}: {e}", device_id=device_id))
        else:
            logger.debug(f"Event sent for device {device_id} at {event.timestamp}")
            self._report(EventSent(device_id=device_id, timestamp=event.timestamp))

    async def _run_device_loop(self, device_loop: DeviceLoop) -> None:
        while not device_loop.stopped:
            await self._tick(device_loop.device_id)
            device_loop.ticks += 1
            if device_loop.stopped:
                break

            delay_ms = self.next_interval_ms()
            device_loop.delays_ms.append(delay_ms)
            del device_loop.delays_ms[:-self.MAX_RECORDED_DELAYS]

            if await self._wait_for_stop(device_loop.stop_event, delay_ms / 1000):
                break

        logger.debug(f"Loop for device {device_loop.device_id} ended after {device_loop.ticks} ticks")

    @staticmethod
    async def _wait_for_stop(stop_event: asyncio.Event, timeout: float) -> bool:
        """Sleep up to timeout seconds; True if the stop event fired first."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # -------------------------------------------------------------------------
    # Retention sweep
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start background housekeeping (the image retention sweep) if configured."""
        if self._storage_config is None or not self._storage_config.cleanup_enabled:
            return
        if not self._storage.save_images:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._run_retention_sweep(), name="storage-retention-sweep"
        )
        logger.info(
            f"Storage retention sweep every {self._storage_config.cleanup_interval_minutes} min, "
            f"max age {self._storage_config.max_age_hours}h"
        )

    async def _run_retention_sweep(self) -> None:
        interval = self._storage_config.cleanup_interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            try:
                result = await asyncio.to_thread(
                    self._storage.cleanup_old_images, self._storage_config.max_age_hours
                )
            except OSError as e:
                logger.error(f"Storage retention sweep failed: {e}")
                continue
            logger.debug(f"Storage retention sweep: {result}")

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Stop every loop, wait for in-flight ticks, then close the publisher."""
        if self._closed:
            return
        self._closed = True

        device_loops = list(self._devices.values())
        self._devices.clear()
        for device_loop in device_loops:
            device_loop.stop_event.set()

        tasks = [dl.task for dl in device_loops if dl.task is not None]
        tasks.extend(self._retiring)
        logger.info(f"Scheduler shutting down, waiting for {len(tasks)} device loops")

        try:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            if self._sweep_task is not None:
                self._sweep_task.cancel()
                await asyncio.gather(self._sweep_task, return_exceptions=True)
        finally:
            await self._publisher.close()
            logger.info("Scheduler stopped")
