"""
Device Worker

Hosts the device scheduler in its own thread with its own asyncio event loop,
so event generation never blocks the host. The host talks to it only through
messages:

    worker = DeviceWorker(config)
    worker.start()
    worker.post_message({"type": "add-device", "deviceId": "CAM-1"})
    report = worker.reports.get()      # {"type": "event-sent", ...}
    worker.terminate()
"""

import asyncio
import logging
import queue
import threading
from typing import Any, Callable, Dict, Optional

from config.emitter_config import EmitterConfig
from core.exceptions import DeviceAlreadyExistsError, DeviceNotFoundError

from .messages import (
    AddDevice,
    DeviceRemoved,
    Report,
    UnknownMessageError,
    WorkerError,
    parse_command,
)
from .scheduler import DeviceScheduler

logger = logging.getLogger(__name__)

_SHUTDOWN = object()

SchedulerFactory = Callable[[Callable[[Report], None]], DeviceScheduler]


class DeviceWorker:
    """Isolated execution context running every device loop."""

    def __init__(
        self,
        config: Optional[EmitterConfig] = None,
        scheduler_factory: Optional[SchedulerFactory] = None,
        name: str = "device-worker"
    ):
        """
        Initialize the worker (does not start it).

        Args:
            config: Emitter settings used by the default scheduler factory
            scheduler_factory: Builds the scheduler inside the worker loop,
                given the report callback
            name: Thread name
        """
        if scheduler_factory is None:
            if config is None:
                raise ValueError("DeviceWorker needs a config or a scheduler_factory")
            scheduler_factory = lambda report: DeviceScheduler.from_config(config, report)

        self._scheduler_factory = scheduler_factory
        self._name = name
        self.reports: "queue.Queue[Dict[str, Any]]" = queue.Queue()

        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._commands: Optional[asyncio.Queue] = None
        self._scheduler: Optional[DeviceScheduler] = None
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and self._ready.is_set()

    def start(self, timeout: float = 10.0) -> None:
        """
        Start the worker thread and wait until its loop accepts messages.

        Raises:
            RuntimeError: If the worker is already running or fails to start
        """
        if self._thread is not None:
            raise RuntimeError("Device worker already started")

        self._thread = threading.Thread(target=self._thread_main, name=self._name, daemon=True)
        self._thread.start()

        if not self._ready.wait(timeout):
            raise RuntimeError(f"Device worker did not start within {timeout}s")
        if self._startup_error is not None:
            raise RuntimeError(f"Device worker failed to start: {self._startup_error}") from self._startup_error
        logger.info("Device worker started")

    def _thread_main(self) -> None:
        try:
            asyncio.run(self._main())
        except Exception:
            logger.exception("Device worker crashed")
        finally:
            self._ready.set()

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._commands = asyncio.Queue()
        try:
            self._scheduler = self._scheduler_factory(self._post_report)
            self._scheduler.start()
        except Exception as e:
            self._startup_error = e
            return
        finally:
            self._ready.set()

        try:
            while True:
                message = await self._commands.get()
                if message is _SHUTDOWN:
                    break
                self._handle_message(message)
        finally:
            await self._scheduler.shutdown()
            logger.info("Device worker loop finished")

    def _handle_message(self, message: Dict[str, Any]) -> None:
        try:
            command = parse_command(message)
        except UnknownMessageError as e:
            logger.warning(str(e))
            self._post_report(WorkerError(error=str(e)))
            return
        except ValueError as e:
            logger.warning(f"Invalid command {message}: {e}")
            self._post_report(WorkerError(error=str(e), device_id=message.get("deviceId")))
            return

        if isinstance(command, AddDevice):
            try:
                self._scheduler.add_device(command.device_id)
            except DeviceAlreadyExistsError as e:
                self._post_report(WorkerError(error=str(e), device_id=command.device_id))
            return

        try:
            self._scheduler.remove_device(command.device_id)
            success = True
        except DeviceNotFoundError:
            success = False
        self._post_report(DeviceRemoved(device_id=command.device_id, success=success))

    def _post_report(self, report: Report) -> None:
        self.reports.put(report.to_dict())

    def post_message(self, message: Dict[str, Any]) -> None:
        """
        Enqueue a command for the worker loop. Safe to call from any thread.

        Raises:
            RuntimeError: If the worker is not running
        """
        if not self.is_running or self._loop is None:
            raise RuntimeError("Device worker is not running")
        self._loop.call_soon_threadsafe(self._commands.put_nowait, dict(message))

    def terminate(self, timeout: float = 30.0) -> bool:
        """
        Stop every device loop, close the publisher and join the thread.

        Returns:
            True if the worker thread exited within the timeout
        """
        if self._thread is None:
            return True

        if self._thread.is_alive() and self._loop is not None:
            try:
                self._loop.call_soon_threadsafe(self._commands.put_nowait, _SHUTDOWN)
            except RuntimeError:
                # Loop already closed
                pass

        self._thread.join(timeout)
        stopped = not self._thread.is_alive()
        if stopped:
            logger.info("Device worker terminated")
        else:
            logger.warning(f"Device worker did not stop within {timeout}s")
        return stopped
