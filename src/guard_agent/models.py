"""
Domain objects for the guard agent.

Readings, photos and remote alarm snapshots are immutable. A TriggerEpisode is
mutable but only the orchestrator writes to it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ArmState(str, Enum):
    DISARMED = "disarmed"
    ARMED = "armed"


class OrchestratorPhase(str, Enum):
    IDLE = "idle"
    TRIGGERING = "triggering"
    SETTLING = "settling"


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class NoticeKind(str, Enum):
    INFO = "info"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ProximityReading:
    """
    One reading from the proximity sensor.

    Attributes:
        distance_mm: Distance to the nearest object, in millimeters
        accuracy: Accuracy value reported by the driver (0 when unknown)
        captured_at: When the reading was taken (UTC)
    """
    distance_mm: float
    accuracy: float = 0.0
    captured_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_json(cls, data: dict, unit: str = "mm") -> "ProximityReading":
        """
        Create a ProximityReading from a JSON dictionary.

        Expected JSON format:
        {
            "distance_mm": 30,            # or "distance" in the feed's unit
            "accuracy": 1,                # optional
            "timestamp": "2026-01-21T14:30:00+00:00"  # optional, ISO or Unix seconds
        }
        Raises ValueError on malformed input.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Reading must be a JSON object, got {type(data).__name__}")

        if "distance_mm" in data:
            distance = _as_number(data["distance_mm"], "distance_mm")
        elif "distance" in data:
            distance = _as_number(data["distance"], "distance")
            if unit == "cm":
                distance *= 10.0
            elif unit != "mm":
                raise ValueError(f"Unsupported distance unit '{unit}'")
        else:
            raise ValueError("Missing 'distance_mm' or 'distance'")

        if distance < 0:
            raise ValueError(f"Distance must not be negative, got {distance}")

        accuracy = _as_number(data.get("accuracy", 0), "accuracy")

        ts_raw = data.get("timestamp")
        if ts_raw is None:
            captured_at = utc_now()
        elif isinstance(ts_raw, (int, float)) and not isinstance(ts_raw, bool):
            try:
                captured_at = datetime.fromtimestamp(ts_raw, tz=timezone.utc)
            except (OverflowError, OSError) as e:
                raise ValueError(f"Invalid timestamp {ts_raw!r}") from e
        else:
            captured_at = datetime.fromisoformat(str(ts_raw).replace("Z", "+00:00"))
            if captured_at.tzinfo is None:
                captured_at = captured_at.replace(tzinfo=timezone.utc)

        return cls(distance_mm=distance, accuracy=accuracy, captured_at=captured_at)

    def to_dict(self) -> dict:
        return {
            "distance_mm": self.distance_mm,
            "accuracy": self.accuracy,
            "captured_at": self.captured_at.isoformat(),
        }


def _as_number(value: Any, name: str) -> float:
    # bool is an int subclass; a "true" distance is a broken feed.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{name}' must be a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class PhotoRef:
    """A stored intruder photo."""
    path: Path
    captured_at: datetime

    def to_dict(self) -> dict:
        return {"path": str(self.path), "captured_at": self.captured_at.isoformat()}


@dataclass(frozen=True)
class RemoteAlarmState:
    """Last known value of the server-side alarm flag."""
    active: bool
    observed_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {"active": self.active, "observed_at": self.observed_at.isoformat()}


@dataclass(frozen=True)
class Notice:
    """Message for the user. CRITICAL notices are shown as a blocking dialog."""
    kind: NoticeKind
    title: str
    message: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TriggerEpisode:
    """
    One alarm cycle, from trigger to settle.

    Created when a trigger fires, discarded after it settles. Only the
    orchestrator mutates it.
    """
    source_reading: Optional[ProximityReading] = None
    manual: bool = False
    episode_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=utc_now)

    local_alarm_active: bool = False

    photo: Optional[PhotoRef] = None
    capture_error: Optional[Exception] = None

    alert_sent: bool = False
    alert_error: Optional[Exception] = None

    photo_sent: bool = False
    photo_send_error: Optional[Exception] = None

    failure: Optional[Exception] = None
    detached: bool = False  # disarmed mid-episode; results are not published
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def to_dict(self) -> dict:
        """Convert episode to dictionary."""
        return {
            "episode_id": self.episode_id,
            "started_at": self.started_at.isoformat(),
            "manual": self.manual,
            "source_reading": self.source_reading.to_dict() if self.source_reading else None,
            "local_alarm_active": self.local_alarm_active,
            "photo": self.photo.to_dict() if self.photo else None,
            "capture_error": _error_text(self.capture_error),
            "alert_sent": self.alert_sent,
            "alert_error": _error_text(self.alert_error),
            "photo_sent": self.photo_sent,
            "photo_send_error": _error_text(self.photo_send_error),
            "failure": _error_text(self.failure),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


def _error_text(exc: Optional[Exception]) -> Optional[str]:
    return str(exc) if exc is not None else None
