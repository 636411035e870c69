"""Shared fixtures: fake Kafka clients, a stub image generator and isolated config.

Nothing here talks to a real broker; the fakes record what the code under test
asked for so tests can assert on it.
"""

import os
import random
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Set

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaTimeoutError

from config.emitter_config import DeviceConfig, KafkaConfig, LEGACY_ENV_ALIASES, StorageConfig
from core.time_utils import to_iso_timestamp
from services.event_publisher import EventPublisher
from services.image_generator import GeneratedImage, NamedColor, TextCrop


_ENV_PREFIXES = ("KAFKA_", "DEVICE_", "STORAGE_", "LOGGING_")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep developer .env files and exported settings out of every test."""
    for key in list(os.environ):
        if key.startswith(_ENV_PREFIXES) or key in LEGACY_ENV_ALIASES.values():
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Kafka fakes
# =============================================================================

class FakeProducer:
    """Stands in for AIOKafkaProducer."""

    def __init__(self, fail_keys: Optional[Set[str]] = None, fail_start: bool = False):
        self.fail_keys = fail_keys or set()
        self.fail_start = fail_start
        self.started = False
        self.stopped = False
        self.start_calls = 0
        self.sent: List[Dict[str, Any]] = []

    async def start(self):
        self.start_calls += 1
        if self.fail_start:
            raise KafkaConnectionError("Unable to bootstrap from [('localhost', 9092)]")
        self.started = True

    async def stop(self):
        self.stopped = True

    async def send_and_wait(self, topic, value=None, key=None, timestamp_ms=None):
        if key in self.fail_keys:
            raise KafkaTimeoutError()
        self.sent.append({"topic": topic, "value": value, "key": key, "timestamp_ms": timestamp_ms})

    def messages_for(self, key: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["key"] == key]


class FakeAdminService:
    """Stands in for KafkaAdminService inside the publisher."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    async def ensure_topic_exists(self, topic_name, retention_ms=None):
        self.calls.append({"topic": topic_name, "retention_ms": retention_ms})
        return True


class FakeAdminClient:
    """Stands in for AIOKafkaAdminClient."""

    def __init__(
        self,
        existing_topics=(),
        topic_errors=None,
        fail_start: bool = False,
        partitions=None,
        configs=None,
        describe_error: int = 0
    ):
        self.existing_topics = set(existing_topics)
        self.topic_errors = topic_errors
        self.partitions = partitions or {0: (1, [1, 2], [1, 2])}
        self.configs = configs or {}
        self.describe_error = describe_error
        self.described_configs = []
        self.fail_start = fail_start
        self.created = []
        self.closed = False

    async def start(self):
        if self.fail_start:
            raise KafkaConnectionError("Unable to bootstrap from [('localhost', 9092)]")

    async def list_topics(self):
        return list(self.existing_topics)

    async def create_topics(self, new_topics, timeout_ms=None, validate_only=False):
        self.created.extend(new_topics)
        errors = self.topic_errors
        if errors is None:
            errors = [(t.name, 0, None) for t in new_topics]
        return SimpleNamespace(topic_errors=errors)

    async def describe_topics(self, topics=None):
        return [
            {
                "error_code": self.describe_error,
                "topic": topic,
                "is_internal": False,
                "partitions": [
                    {"error_code": 0, "partition": p, "leader": leader, "replicas": replicas, "isr": isr}
                    for p, (leader, replicas, isr) in self.partitions.items()
                ],
            }
            for topic in topics
        ]

    async def describe_configs(self, config_resources, include_synonyms=False):
        self.described_configs.extend(config_resources)
        entries = [(name, value, False, False, False) for name, value in self.configs.items()]
        resources = [(0, None, 2, r.name, entries) for r in config_resources]
        return [SimpleNamespace(resources=resources)]

    async def close(self):
        self.closed = True


# =============================================================================
# Image stub
# =============================================================================

class StubImageGenerator:
    """Returns a tiny fixed frame so scheduler tests skip OpenCV rendering."""

    def __init__(self, fail_devices: Optional[Set[str]] = None):
        self.fail_devices = fail_devices or set()
        self.calls: List[str] = []

    def generate_image(self, device_id: str) -> GeneratedImage:
        self.calls.append(device_id)
        if device_id in self.fail_devices:
            raise RuntimeError("renderer exploded")
        color = NamedColor('#2C3E50', 'dark_blue_gray')
        return GeneratedImage(
            device_id=device_id,
            jpeg_bytes=b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9",
            position="top-left",
            text_crop=TextCrop(left=5, top=5, width=300, height=60, position="top-left"),
            background_colors={"primary": color, "secondary": color, "accent": color},
            timestamp=to_iso_timestamp(),
        )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def kafka_config():
    return KafkaConfig(brokers=["broker-1:9092", "broker-2:9092"], topic="test-events")


@pytest.fixture
def fake_producer():
    return FakeProducer()


@pytest.fixture
def fake_admin():
    return FakeAdminService()


@pytest.fixture
def publisher(kafka_config, fake_admin, fake_producer):
    return EventPublisher(kafka_config, admin=fake_admin, producer_factory=lambda: fake_producer)


@pytest.fixture
def stub_images():
    return StubImageGenerator()


@pytest.fixture
def fast_devices():
    """Zero-delay interval window."""
    return DeviceConfig(min_interval_ms=0, max_interval_ms=0)


@pytest.fixture
def storage_config(tmp_path):
    return StorageConfig(save_images=True, tmp_folder=str(tmp_path / "images"), timezone="UTC")


@pytest.fixture
def rng():
    return random.Random(1234)
