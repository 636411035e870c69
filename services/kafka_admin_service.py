"""
Kafka Topic Administration

Ensures the event topic exists with the configured retention before the
producer's first send. Create-if-absent only: an existing topic is left
untouched and nothing is ever deleted or recreated here. Also reports the
current partition layout and topic-level configuration of a topic.
"""

import logging
from typing import Any, Callable, Dict, Optional

from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.admin.config_resource import ConfigResource, ConfigResourceType
from aiokafka.errors import KafkaError, TopicAlreadyExistsError, for_code

from config.emitter_config import KafkaConfig
from core.exceptions import BrokerConnectionError

logger = logging.getLogger(__name__)


class KafkaAdminService:
    """Short-lived admin connections for topic provisioning."""

    def __init__(
        self,
        config: Optional[KafkaConfig] = None,
        admin_factory: Optional[Callable[[], AIOKafkaAdminClient]] = None
    ):
        """
        Initialize the admin service.

        Args:
            config: Kafka settings
            admin_factory: Builds an unstarted admin client (tests pass a fake)
        """
        self._config = config or KafkaConfig()
        self._admin_factory = admin_factory or self._create_admin_client

    def _create_admin_client(self) -> AIOKafkaAdminClient:
        return AIOKafkaAdminClient(
            bootstrap_servers=self._config.bootstrap_servers,
            client_id=self._config.admin_client_id,
            request_timeout_ms=self._config.request_timeout_ms,
        )

    def topic_configs(self, retention_ms: int) -> Dict[str, str]:
        """Topic-level settings applied at creation time."""
        configs = {
            "retention.ms": str(retention_ms),
            "cleanup.policy": "delete",
            "segment.ms": str(self._config.segment_ms),
            "delete.retention.ms": str(self._config.delete_retention_ms),
            "max.message.bytes": str(self._config.max_request_size),
        }
        if self._config.retention_bytes >= 0:
            configs["retention.bytes"] = str(self._config.retention_bytes)
        return configs

    async def ensure_topic_exists(self, topic_name: str, retention_ms: Optional[int] = None) -> bool:
        """
        Create the topic if it does not exist.

        Args:
            topic_name: Topic to provision
            retention_ms: retention.ms for a newly created topic

        Returns:
            True if the topic was created, False if it already existed

        Raises:
            BrokerConnectionError: If the admin connection or creation fails
        """
        retention_ms = retention_ms if retention_ms is not None else self._config.retention_ms
        admin = self._admin_factory()
        try:
            await admin.start()
            logger.debug("Kafka admin connected")

            existing_topics = await admin.list_topics()
            if topic_name in existing_topics:
                logger.info(f"Topic {topic_name} already exists, leaving its configuration unchanged")
                return False

            logger.info(f"Creating topic: {topic_name} with {retention_ms}ms retention")
            response = await admin.create_topics([
                NewTopic(
                    name=topic_name,
                    num_partitions=self._config.num_partitions,
                    replication_factor=self._config.replication_factor,
                    topic_configs=self.topic_configs(retention_ms),
                )
            ])

            for topic, error_code, *rest in getattr(response, "topic_errors", []):
                if error_code == 0:
                    continue
                if error_code == TopicAlreadyExistsError.errno:
                    # Another producer created it between list and create
                    logger.info(f"Topic {topic} was created concurrently")
                    return False
                error_message = rest[0] if rest and rest[0] else for_code(error_code).__name__
                raise BrokerConnectionError(
                    brokers=self._config.brokers,
                    reason=f"Creating topic {topic} failed: {error_message}"
                )

            logger.info(
                f"Topic {topic_name} created with "
                f"{round(retention_ms / 3600000, 2)}h retention, {self._config.num_partitions} partitions"
            )
            return True

        except TopicAlreadyExistsError:
            logger.info(f"Topic {topic_name} was created concurrently")
            return False
        except KafkaError as e:
            raise BrokerConnectionError(brokers=self._config.brokers, reason=str(e)) from e
        except OSError as e:
            raise BrokerConnectionError(brokers=self._config.brokers, reason=str(e)) from e
        finally:
            try:
                await admin.close()
                logger.debug("Kafka admin disconnected")
            except Exception as e:
                logger.warning(f"Error closing Kafka admin client: {e}")

    async def get_topic_info(self, topic_name: str) -> Dict[str, Any]:
        """
        Describe a topic's partitions and its topic-level configuration.

        Returns:
            {"metadata": {"name", "isInternal", "partitions": [...]},
             "configs": {config name: value}}

        Raises:
            BrokerConnectionError: If the admin connection fails or the broker
                reports an error for the topic
        """
        admin = self._admin_factory()
        try:
            await admin.start()
            logger.debug("Kafka admin connected")

            [description] = await admin.describe_topics([topic_name])
            self._raise_for_error(description["error_code"], f"Describing topic {topic_name}")
            metadata = {
                "name": description["topic"],
                "isInternal": description.get("is_internal", False),
                "partitions": [
                    {
                        "partition": p["partition"],
                        "leader": p["leader"],
                        "replicas": list(p["replicas"]),
                        "isr": list(p["isr"]),
                    }
                    for p in sorted(description["partitions"], key=lambda p: p["partition"])
                ],
            }

            responses = await admin.describe_configs(
                [ConfigResource(ConfigResourceType.TOPIC, topic_name)]
            )
            configs: Dict[str, Optional[str]] = {}
            for response in responses:
                for error_code, error_message, _type, _name, entries in response.resources:
                    self._raise_for_error(
                        error_code, f"Describing configs of {topic_name}", error_message
                    )
                    for entry in entries:
                        configs[entry[0]] = entry[1]

            logger.debug(f"Topic {topic_name}: {len(metadata['partitions'])} partitions, {len(configs)} configs")
            return {"metadata": metadata, "configs": configs}

        except KafkaError as e:
            raise BrokerConnectionError(brokers=self._config.brokers, reason=str(e)) from e
        except OSError as e:
            raise BrokerConnectionError(brokers=self._config.brokers, reason=str(e)) from e
        finally:
            try:
                await admin.close()
                logger.debug("Kafka admin disconnected")
            except Exception as e:
                logger.warning(f"Error closing Kafka admin client: {e}")

    def _raise_for_error(self, error_code: int, action: str, error_message: Optional[str] = None) -> None:
        if error_code == 0:
            return
        reason = error_message or for_code(error_code).__name__
        raise BrokerConnectionError(brokers=self._config.brokers, reason=f"{action} failed: {reason}")
