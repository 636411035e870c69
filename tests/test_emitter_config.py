import pytest

from config.emitter_config import EmitterConfig, parse_duration_ms
from config.exceptions import ConfigurationLoadError, ConfigurationValidationError


def _write_yaml(tmp_path, text):
    path = tmp_path / "settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.parametrize("value, expected", [
    ("30s", 30_000),
    ("15m", 900_000),
    ("1h", 3_600_000),
    ("7d", 604_800_000),
    ("3600000", 3_600_000),
    (5000, 5000),
])
def test_parse_duration_ms(value, expected):
    assert parse_duration_ms(value) == expected


@pytest.mark.parametrize("value", ["1w", "h1", "1.5h", "", "soon"])
def test_parse_duration_ms_rejects_bad_format(value):
    with pytest.raises(ValueError, match="Invalid time format"):
        parse_duration_ms(value)


def test_defaults_when_yaml_missing(tmp_path):
    config = EmitterConfig(config_file=tmp_path / "absent.yaml")

    assert config.kafka.brokers == ["localhost:9092"]
    assert config.kafka.topic == "device-events"
    assert config.kafka.retention_ms == 3_600_000
    assert config.kafka.producer_client_id == "device-event-producer-worker"
    assert config.kafka.admin_client_id == "device-event-producer-admin"
    assert config.device.min_interval_ms == 3000
    assert config.device.max_interval_ms == 10000
    assert config.storage.save_images is False
    assert config.storage.timezone == "UTC"
    assert config.storage.cleanup_enabled is False


def test_bundled_settings_file_loads():
    config = EmitterConfig()
    assert config.kafka.retention_ms == 3_600_000
    assert config.kafka.segment_ms == 300_000
    assert config.kafka.delete_retention_ms == 60_000


def test_yaml_values_and_duration_strings(tmp_path):
    path = _write_yaml(tmp_path, """
kafka:
  brokers: [a:9092, b:9092]
  topic: camera-events
  retention_ms: 2h
device:
  min_interval_ms: 100
  max_interval_ms: 200
  initial_devices: [CAM-1, CAM-2]
""")
    config = EmitterConfig(config_file=path)

    assert config.kafka.brokers == ["a:9092", "b:9092"]
    assert config.kafka.bootstrap_servers == "a:9092,b:9092"
    assert config.kafka.topic == "camera-events"
    assert config.kafka.retention_ms == 7_200_000
    assert config.kafka.retention_hours == 2
    assert config.device.initial_devices == ["CAM-1", "CAM-2"]


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    path = _write_yaml(tmp_path, "kafka:\n  topic: from-yaml\n")
    monkeypatch.setenv("KAFKA_TOPIC", "from-env")
    monkeypatch.setenv("KAFKA_BROKERS", "x:9092, y:9092")
    monkeypatch.setenv("KAFKA_RETENTION_MS", "30m")

    config = EmitterConfig(config_file=path)

    assert config.kafka.topic == "from-env"
    assert config.kafka.brokers == ["x:9092", "y:9092"]
    assert config.kafka.retention_ms == 1_800_000


def test_legacy_environment_names(tmp_path, monkeypatch):
    monkeypatch.setenv("MIN_EVENT_INTERVAL", "500")
    monkeypatch.setenv("MAX_EVENT_INTERVAL", "1500")
    monkeypatch.setenv("SAVE_IMAGES", "true")
    monkeypatch.setenv("TMP_FOLDER", str(tmp_path / "frames"))
    monkeypatch.setenv("IMAGE_TIMEZONE", "Europe/Paris")

    config = EmitterConfig(config_file=tmp_path / "absent.yaml")

    assert config.device.min_interval_ms == 500
    assert config.device.max_interval_ms == 1500
    assert config.storage.save_images is True
    assert config.storage.tmp_folder == str(tmp_path / "frames")
    assert config.storage.timezone == "Europe/Paris"


def test_all_digit_device_id_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DEVICE_INITIAL_DEVICES", "101")

    config = EmitterConfig(config_file=tmp_path / "absent.yaml")

    assert config.device.initial_devices == ["101"]


def test_scalar_initial_devices_in_yaml(tmp_path):
    path = _write_yaml(tmp_path, "device:\n  initial_devices: 101\n")

    config = EmitterConfig(config_file=path)

    assert config.device.initial_devices == ["101"]


def test_reload_picks_up_edited_yaml(tmp_path):
    path = _write_yaml(tmp_path, "kafka:\n  topic: before\n")
    config = EmitterConfig(config_file=path)

    path.write_text("kafka:\n  topic: after\n", encoding="utf-8")
    config.reload()

    assert config.kafka.topic == "after"


def test_reload_rejects_invalid_edit(tmp_path):
    path = _write_yaml(tmp_path, "device:\n  min_interval_ms: 10\n  max_interval_ms: 20\n")
    config = EmitterConfig(config_file=path)

    path.write_text("device:\n  min_interval_ms: 50\n  max_interval_ms: 20\n", encoding="utf-8")

    with pytest.raises(ConfigurationValidationError):
        config.reload()


def test_dotenv_file_fills_unset_variables(tmp_path, monkeypatch):
    env_file = tmp_path / "custom.env"
    env_file.write_text("KAFKA_TOPIC=from-dotenv\n", encoding="utf-8")
    monkeypatch.delenv("KAFKA_TOPIC", raising=False)

    config = EmitterConfig(config_file=tmp_path / "absent.yaml", env_file=env_file)

    assert config.kafka.topic == "from-dotenv"


def test_overrides_win_over_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DEVICE_MIN_INTERVAL_MS", "900")

    config = EmitterConfig(
        config_file=tmp_path / "absent.yaml",
        overrides={"device": {"min_interval_ms": 10, "max_interval_ms": 20}},
    )

    assert config.device.min_interval_ms == 10
    assert config.device.max_interval_ms == 20


def test_invalid_duration_names_the_field(tmp_path):
    path = _write_yaml(tmp_path, "kafka:\n  retention_ms: forever\n")

    with pytest.raises(ConfigurationLoadError) as excinfo:
        EmitterConfig(config_file=path)

    assert excinfo.value.field == "kafka.retention_ms"


def test_invalid_yaml_syntax(tmp_path):
    path = _write_yaml(tmp_path, "kafka: [unclosed\n")

    with pytest.raises(ConfigurationLoadError):
        EmitterConfig(config_file=path)


def test_validation_collects_every_error(tmp_path):
    path = _write_yaml(tmp_path, """
kafka:
  num_partitions: 0
device:
  min_interval_ms: 5000
  max_interval_ms: 1000
storage:
  timezone: Mars/Olympus_Mons
""")

    with pytest.raises(ConfigurationValidationError) as excinfo:
        EmitterConfig(config_file=path)

    errors = excinfo.value.errors
    assert len(errors) == 3
    assert any("num_partitions" in e for e in errors)
    assert any("max_interval_ms" in e for e in errors)
    assert any("timezone" in e for e in errors)


def test_validation_can_be_deferred(tmp_path):
    config = EmitterConfig(
        config_file=tmp_path / "absent.yaml",
        validate=False,
        overrides={"device": {"min_interval_ms": 10, "max_interval_ms": 1}},
    )
    with pytest.raises(ConfigurationValidationError):
        config.validate()


def test_to_dict_round_trips_key_sections(tmp_path):
    config = EmitterConfig(config_file=tmp_path / "absent.yaml")
    data = config.to_dict()

    assert set(data) == {"kafka", "device", "storage", "logging"}
    assert data["kafka"]["topic"] == config.kafka.topic
    assert data["device"]["max_interval_ms"] == config.device.max_interval_ms
