from datetime import datetime, timezone

import pytest

from guard_agent.errors import AlertSendError
from guard_agent.models import PhotoRef, ProximityReading, TriggerEpisode, utc_now


def test_reading_from_json_mm():
    reading = ProximityReading.from_json(
        {"distance_mm": 30, "accuracy": 1, "timestamp": "2026-01-21T14:30:00Z"}
    )

    assert reading.distance_mm == 30.0
    assert reading.accuracy == 1.0
    assert reading.captured_at == datetime(2026, 1, 21, 14, 30, tzinfo=timezone.utc)


def test_reading_from_json_centimeters():
    reading = ProximityReading.from_json({"distance": 3}, unit="cm")

    assert reading.distance_mm == 30.0
    assert reading.accuracy == 0.0


def test_reading_from_json_plain_distance_defaults_to_mm():
    assert ProximityReading.from_json({"distance": 42}).distance_mm == 42.0


def test_reading_from_json_epoch_and_naive_timestamps():
    epoch = ProximityReading.from_json({"distance_mm": 5, "timestamp": 0})
    naive = ProximityReading.from_json({"distance_mm": 5, "timestamp": "2026-01-21T14:30:00"})

    assert epoch.captured_at == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert naive.captured_at.tzinfo is timezone.utc


@pytest.mark.parametrize(
    "data",
    [
        [],
        {},
        {"distance_mm": "near"},
        {"distance_mm": True},
        {"distance_mm": -1},
        {"distance_mm": 10, "accuracy": "high"},
        {"distance_mm": 10, "timestamp": "yesterday"},
        {"distance_mm": 10, "timestamp": 1e20},
    ],
)
def test_reading_from_json_rejects_malformed(data):
    with pytest.raises(ValueError):
        ProximityReading.from_json(data)


def test_reading_from_json_rejects_unknown_unit():
    with pytest.raises(ValueError, match="unit"):
        ProximityReading.from_json({"distance": 3}, unit="in")


def test_episode_to_dict(tmp_path):
    reading = ProximityReading(distance_mm=30, accuracy=1)
    episode = TriggerEpisode(source_reading=reading)
    episode.photo = PhotoRef(path=tmp_path / "intruder_1.jpg", captured_at=utc_now())
    episode.alert_error = AlertSendError("POST /alert returned HTTP 500")

    data = episode.to_dict()

    assert len(data["episode_id"]) == 32
    assert data["manual"] is False
    assert data["source_reading"]["distance_mm"] == 30
    assert data["photo"]["path"].endswith("intruder_1.jpg")
    assert data["alert_sent"] is False
    assert data["alert_error"] == "POST /alert returned HTTP 500"
    assert data["failure"] is None
    assert data["completed_at"] is None
    assert not episode.is_complete


def test_episode_ids_are_unique():
    assert TriggerEpisode().episode_id != TriggerEpisode().episode_id
