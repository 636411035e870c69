import json
import random

from services.storage_service import StorageRecord
from simulation.event_payload import EVENT_TYPE, RECORDING_MODES, build_event


def test_event_wire_format(stub_images):
    image = stub_images.generate_image("CAM-1")
    event = build_event("CAM-1", "2024-05-01T00:00:00.000Z", image, rng=random.Random(5))

    data = event.to_dict()

    assert data["deviceId"] == "CAM-1"
    assert data["timestamp"] == "2024-05-01T00:00:00.000Z"
    assert data["eventType"] == EVENT_TYPE == "camera_capture"
    assert 0 <= data["value"] <= 100
    assert round(data["value"], 2) == data["value"]
    assert data["image"] == {
        "base64": image.base64,
        "position": "top-left",
        "dimensions": {"width": 1280, "height": 720},
        "format": "jpeg",
        "size": len(image.jpeg_bytes),
        "saved": None,
    }
    assert data["device_text_crop"] == {"left": 5, "top": 5, "width": 300, "height": 60, "position": "top-left"}
    assert set(data["background_colors"]) == {"primary", "secondary", "accent"}
    assert data["background_colors"]["primary"] == {"hex": "#2C3E50", "name": "dark_blue_gray"}
    json.dumps(data)


def test_metadata_ranges(stub_images):
    image = stub_images.generate_image("CAM-1")
    rng = random.Random(9)

    for _ in range(200):
        metadata = build_event("CAM-1", "t", image, rng=rng).to_dict()["metadata"]
        assert metadata["location"] in {f"zone_{i}" for i in range(1, 6)}
        assert 1 <= metadata["battery"] <= 100
        assert 10 <= metadata["temperature"] <= 60
        assert 20 <= metadata["humidity"] <= 100
        assert metadata["cameraStatus"] == "active"
        assert metadata["recordingMode"] in RECORDING_MODES


def test_saved_block_when_image_was_persisted(stub_images):
    image = stub_images.generate_image("CAM-1")
    saved = StorageRecord(filename="f.jpg", filepath="/tmp/f.jpg", size=123, modified_at=0.0)

    data = build_event("CAM-1", "t", image, saved=saved).to_dict()

    assert data["image"]["saved"] == {"filename": "f.jpg", "filepath": "/tmp/f.jpg", "diskSize": 123}
