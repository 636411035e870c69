"""
Event Publisher

Owns the single Kafka producer shared by every device loop.

The connection is established lazily by the first publish and guarded by a
small state machine (DISCONNECTED -> CONNECTING -> READY) behind an
asyncio.Lock, so concurrent first ticks from many devices provision the
topic and start the producer exactly once. A failed connect drops back to
DISCONNECTED and the next publish retries it.

Usage:
    publisher = EventPublisher(config.kafka)
    await publisher.publish(event)     # connects on first use
    await publisher.close()
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from config.emitter_config import KafkaConfig
from core.exceptions import BrokerConnectionError, PublishError

from .kafka_admin_service import KafkaAdminService

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"


def serialize_value(value: Any) -> bytes:
    return json.dumps(value, separators=(',', ':')).encode('utf-8')


def serialize_key(key: str) -> bytes:
    return key.encode('utf-8')


class EventPublisher:
    """Lazily connected, shared Kafka producer for device events."""

    def __init__(
        self,
        config: Optional[KafkaConfig] = None,
        admin: Optional[KafkaAdminService] = None,
        producer_factory: Optional[Callable[[], AIOKafkaProducer]] = None
    ):
        """
        Initialize the publisher.

        Args:
            config: Kafka settings
            admin: Topic provisioning service
            producer_factory: Builds an unstarted producer (tests pass a fake)
        """
        self._config = config or KafkaConfig()
        self._admin = admin or KafkaAdminService(self._config)
        self._producer_factory = producer_factory or self._create_producer
        self._producer = None
        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self.connect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def topic(self) -> str:
        return self._config.topic

    def _create_producer(self) -> AIOKafkaProducer:
        # aiokafka retries failed sends internally until request_timeout_ms elapses
        return AIOKafkaProducer(
            bootstrap_servers=self._config.bootstrap_servers,
            client_id=self._config.producer_client_id,
            max_request_size=self._config.max_request_size,
            request_timeout_ms=self._config.request_timeout_ms,
            retry_backoff_ms=self._config.retry_backoff_ms,
            key_serializer=serialize_key,
            value_serializer=serialize_value,
        )

    async def ensure_connected(self) -> None:
        """
        Provision the topic and start the producer if not already done.

        Raises:
            BrokerConnectionError: If topic provisioning or producer start fails
        """
        if self._state is ConnectionState.READY:
            return

        async with self._lock:
            # Another device may have finished connecting while we waited
            if self._state is ConnectionState.READY:
                return

            self._state = ConnectionState.CONNECTING
            self.connect_attempts += 1
            producer = None
            try:
                await self._admin.ensure_topic_exists(self._config.topic, self._config.retention_ms)
                producer = self._producer_factory()
                await producer.start()
            except BrokerConnectionError:
                self._state = ConnectionState.DISCONNECTED
                await self._discard(producer)
                raise
            except (KafkaError, OSError, asyncio.TimeoutError) as e:
                self._state = ConnectionState.DISCONNECTED
                await self._discard(producer)
                raise BrokerConnectionError(brokers=self._config.brokers, reason=str(e)) from e

            self._producer = producer
            self._state = ConnectionState.READY
            logger.info(
                f"Kafka producer connected to {self._config.bootstrap_servers} - "
                f"topic {self._config.topic}, retention {self._config.retention_ms}ms"
            )

    async def _discard(self, producer) -> None:
        """Stop a producer whose start did not complete."""
        if producer is None:
            return
        try:
            await producer.stop()
        except Exception as e:
            logger.debug(f"Ignoring error while stopping half-started producer: {e}")

    async def publish(self, event) -> None:
        """
        Send one DeviceEvent keyed by its device id and wait for the broker ack.

        Raises:
            BrokerConnectionError: If the lazy connect fails
            PublishError: If the send fails
        """
        await self.ensure_connected()

        try:
            await self._producer.send_and_wait(
                self._config.topic,
                value=event.to_dict(),
                key=event.device_id,
                timestamp_ms=int(time.time() * 1000),
            )
        except (KafkaError, OSError, asyncio.TimeoutError, TypeError, ValueError) as e:
            raise PublishError(
                device_id=event.device_id,
                topic=self._config.topic,
                reason=f"{type(e).__name__}: {e}"
            ) from e

    async def close(self) -> None:
        """Stop the shared producer if it was started."""
        async with self._lock:
            if self._producer is None:
                self._state = ConnectionState.DISCONNECTED
                return
            try:
                await self._producer.stop()
                logger.info("Kafka producer disconnected")
            finally:
                self._producer = None
                self._state = ConnectionState.DISCONNECTED
