"""
Custom Domain Exception Classes

Provides a structured exception hierarchy for the device event emitter.
All domain-specific exceptions inherit from ApplicationException.

Usage:
    from core.exceptions import DeviceAlreadyExistsError, PublishError

    # Raise with context
    raise DeviceAlreadyExistsError(device_id="CAM-1")

    # Catch and handle
    try:
        await publisher.publish(event)
    except PublishError as e:
        logger.error(f"Publish failed: {e}")
"""

from typing import List, Optional


class ApplicationException(Exception):
    """
    Base exception class for all application-specific errors.

    Provides:
    - Meaningful error messages with context
    - Resolution steps for operator guidance
    - Structured error information for logging
    """

    def __init__(
        self,
        message: str,
        resolution_steps: Optional[List[str]] = None,
        details: Optional[dict] = None
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            resolution_steps: List of steps the operator can take to resolve the issue
            details: Additional context for logging/debugging
        """
        super().__init__(message)
        self.message = message
        self.resolution_steps = resolution_steps or []
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def get_user_message(self) -> str:
        """Get a formatted message suitable for display to operators."""
        msg = self.message
        if self.resolution_steps:
            msg += "\n\nPossible solutions:\n"
            for i, step in enumerate(self.resolution_steps, 1):
                msg += f"  {i}. {step}\n"
        return msg


class DeviceAlreadyExistsError(ApplicationException):
    """Raised when adding a device id that already has a running emission loop."""

    def __init__(
        self,
        device_id: str = "",
        message: str = "Device already exists",
        resolution_steps: Optional[List[str]] = None
    ):
        default_steps = [
            "List the active devices before adding",
            "Remove the device first if it must be restarted",
        ]
        super().__init__(
            message=message,
            resolution_steps=resolution_steps or default_steps,
            details={"device_id": device_id}
        )
        self.device_id = device_id


class DeviceNotFoundError(ApplicationException):
    """Raised when removing or querying a device id that is not scheduled."""

    def __init__(
        self,
        device_id: str = "",
        message: str = "Device not found",
        resolution_steps: Optional[List[str]] = None
    ):
        default_steps = [
            "Check the device id for typos",
            "List the active devices to confirm it is running",
        ]
        super().__init__(
            message=message,
            resolution_steps=resolution_steps or default_steps,
            details={"device_id": device_id}
        )
        self.device_id = device_id


class ImageGenerationError(ApplicationException):
    """
    Raised when the synthetic camera image cannot be rendered or encoded.

    Common causes:
    - OpenCV build without JPEG support
    - Out of memory while allocating the canvas
    """

    def __init__(
        self,
        device_id: str = "",
        reason: str = "",
        message: str = "",
        resolution_steps: Optional[List[str]] = None
    ):
        if not message:
            message = f"Image generation failed for device '{device_id}'"
            if reason:
                message += f": {reason}"
        default_steps = [
            "Verify opencv-python is installed with JPEG codec support",
            "Check available memory on the host",
        ]
        super().__init__(
            message=message,
            resolution_steps=resolution_steps or default_steps,
            details={"device_id": device_id, "reason": reason}
        )
        self.device_id = device_id
        self.reason = reason


class PersistenceError(ApplicationException):
    """
    Raised when an image cannot be written to the local image store.

    Never fatal: the storage service logs it and the event is still
    published without the saved block.
    """

    def __init__(
        self,
        path: str = "",
        reason: str = "",
        message: str = "",
        resolution_steps: Optional[List[str]] = None
    ):
        if not message:
            message = f"Could not save image to {path}" if path else "Could not save image"
            if reason:
                message += f": {reason}"
        default_steps = [
            "Check that the image folder exists and is writable",
            "Check free disk space",
            "Run a storage cleanup to remove aged images",
        ]
        super().__init__(
            message=message,
            resolution_steps=resolution_steps or default_steps,
            details={"path": path, "reason": reason}
        )
        self.path = path
        self.reason = reason


class PublishError(ApplicationException):
    """
    Raised when the broker rejects or times out a single event send.

    Common causes:
    - Message larger than the broker's max message size
    - Broker unavailable after the producer exhausted its retries
    """

    def __init__(
        self,
        device_id: str = "",
        topic: str = "",
        reason: str = "",
        message: str = "",
        resolution_steps: Optional[List[str]] = None
    ):
        if not message:
            message = f"Failed to publish event for device '{device_id}' to topic '{topic}'"
            if reason:
                message += f": {reason}"
        default_steps = [
            "Check that the Kafka brokers are reachable",
            "Verify the topic's max.message.bytes allows image payloads",
            "Review producer request timeout settings",
        ]
        super().__init__(
            message=message,
            resolution_steps=resolution_steps or default_steps,
            details={"device_id": device_id, "topic": topic, "reason": reason}
        )
        self.device_id = device_id
        self.topic = topic
        self.reason = reason


class BrokerConnectionError(ApplicationException):
    """
    Raised when connecting to the broker or ensuring the topic fails.

    The next tick of any device retries the connect path.
    """

    def __init__(
        self,
        brokers: Optional[List[str]] = None,
        reason: str = "",
        message: str = "",
        resolution_steps: Optional[List[str]] = None
    ):
        brokers = brokers or []
        if not message:
            message = f"Could not connect to Kafka brokers {', '.join(brokers)}" if brokers else "Could not connect to Kafka"
            if reason:
                message += f": {reason}"
        default_steps = [
            "Check that the Kafka brokers are running",
            "Verify KAFKA_BROKERS points at reachable host:port pairs",
            "Check that the client may create topics or that the topic exists",
        ]
        super().__init__(
            message=message,
            resolution_steps=resolution_steps or default_steps,
            details={"brokers": brokers, "reason": reason}
        )
        self.brokers = brokers
        self.reason = reason
