import asyncio

import pytest
from aiokafka.errors import TopicAlreadyExistsError, UnknownTopicOrPartitionError

from config.emitter_config import KafkaConfig
from core.exceptions import BrokerConnectionError
from services.kafka_admin_service import KafkaAdminService

from conftest import FakeAdminClient


def _service(client, **config):
    return KafkaAdminService(KafkaConfig(**config), admin_factory=lambda: client)


def test_creates_missing_topic_with_retention():
    client = FakeAdminClient(existing_topics={"other"})
    service = _service(client, num_partitions=6, replication_factor=2)

    created = asyncio.run(service.ensure_topic_exists("device-events", retention_ms=7_200_000))

    assert created is True
    [topic] = client.created
    assert topic.name == "device-events"
    assert topic.num_partitions == 6
    assert topic.replication_factor == 2
    assert topic.topic_configs["retention.ms"] == "7200000"
    assert topic.topic_configs["cleanup.policy"] == "delete"
    assert client.closed


def test_existing_topic_is_left_alone():
    client = FakeAdminClient(existing_topics={"device-events"})

    created = asyncio.run(_service(client).ensure_topic_exists("device-events"))

    assert created is False
    assert client.created == []
    assert client.closed


def test_topic_created_concurrently_counts_as_present():
    client = FakeAdminClient(topic_errors=[("device-events", TopicAlreadyExistsError.errno, None)])

    assert asyncio.run(_service(client).ensure_topic_exists("device-events")) is False


def test_creation_error_raises_broker_connection_error():
    client = FakeAdminClient(topic_errors=[("device-events", 37, "Invalid partitions")])

    with pytest.raises(BrokerConnectionError, match="Invalid partitions"):
        asyncio.run(_service(client).ensure_topic_exists("device-events"))
    assert client.closed


def test_unreachable_broker_raises_broker_connection_error():
    client = FakeAdminClient(fail_start=True)

    with pytest.raises(BrokerConnectionError):
        asyncio.run(_service(client, brokers=["nowhere:9092"]).ensure_topic_exists("device-events"))
    assert client.closed


def test_topic_configs_include_retention_bytes_only_when_bounded():
    unbounded = KafkaAdminService(KafkaConfig(retention_bytes=-1)).topic_configs(1000)
    bounded = KafkaAdminService(KafkaConfig(retention_bytes=1 << 30)).topic_configs(1000)

    assert "retention.bytes" not in unbounded
    assert bounded["retention.bytes"] == str(1 << 30)
    assert unbounded["segment.ms"] == "300000"
    assert unbounded["delete.retention.ms"] == "60000"


def test_topic_info_lists_partitions_and_configs():
    client = FakeAdminClient(
        partitions={1: (2, [2, 3], [2]), 0: (1, [1, 2], [1, 2])},
        configs={"retention.ms": "3600000", "cleanup.policy": "delete"},
    )

    info = asyncio.run(_service(client).get_topic_info("device-events"))

    assert info["metadata"]["name"] == "device-events"
    assert info["metadata"]["isInternal"] is False
    assert info["metadata"]["partitions"] == [
        {"partition": 0, "leader": 1, "replicas": [1, 2], "isr": [1, 2]},
        {"partition": 1, "leader": 2, "replicas": [2, 3], "isr": [2]},
    ]
    assert info["configs"] == {"retention.ms": "3600000", "cleanup.policy": "delete"}
    [resource] = client.described_configs
    assert resource.name == "device-events"
    assert client.closed


def test_topic_info_for_unknown_topic_raises():
    client = FakeAdminClient(describe_error=UnknownTopicOrPartitionError.errno)

    with pytest.raises(BrokerConnectionError, match="UnknownTopicOrPartitionError"):
        asyncio.run(_service(client).get_topic_info("missing"))
    assert client.closed


def test_topic_info_unreachable_broker_raises():
    client = FakeAdminClient(fail_start=True)

    with pytest.raises(BrokerConnectionError):
        asyncio.run(_service(client).get_topic_info("device-events"))
    assert client.closed
