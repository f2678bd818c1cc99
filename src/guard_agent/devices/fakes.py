"""
In-memory devices for dry runs and tests.

They behave like the real drivers at the adapter boundary: the fake sensor
pushes readings to listeners, the fake camera writes a small JPEG payload, the
fake player records what it was asked to do.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Optional

from ..errors import SensorUnavailable
from ..models import ProximityReading
from .proximity import ReadingCallback

# SOI + APP0 "JFIF" header + EOI: enough for anything that sniffs the type.
FAKE_JPEG = bytes.fromhex("ffd8ffe000104a46494600010100000100010000ffd9")


class FakeProximitySensor:
    """A sensor whose readings are pushed by calling emit()."""

    def __init__(self, available: bool = True):
        self.available = available
        self._listeners: dict[int, ReadingCallback] = {}
        self._keys = itertools.count(1)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def is_available(self) -> bool:
        return self.available

    def add_listener(self, callback: ReadingCallback) -> "_FakeSubscription":
        if not self.available:
            raise SensorUnavailable("Fake sensor switched off")
        key = next(self._keys)
        self._listeners[key] = callback
        return _FakeSubscription(self._listeners, key)

    def emit(self, distance_mm: float, accuracy: float = 1.0) -> ProximityReading:
        reading = ProximityReading(distance_mm=distance_mm, accuracy=accuracy)
        for callback in list(self._listeners.values()):
            callback(reading)
        return reading


class _FakeSubscription:
    def __init__(self, listeners: dict, key: int):
        self._listeners = listeners
        self._key = key

    def remove(self) -> None:
        self._listeners.pop(self._key, None)


class FakeCamera:
    """
    A fake camera that writes a fixed JPEG payload.

    Args:
        ready_on_open: Whether open() makes the camera ready
        fail_shot: Raise from take_picture() to simulate a failed shot
        payload: Bytes written for each picture
    """

    def __init__(self, ready_on_open: bool = True, fail_shot: bool = False, payload: bytes = FAKE_JPEG):
        self.ready_on_open = ready_on_open
        self.fail_shot = fail_shot
        self.payload = payload
        self.opened = False
        self.shots = 0

    def open(self) -> None:
        self.opened = True

    def is_ready(self) -> bool:
        return self.opened and self.ready_on_open

    def take_picture(self, path: Path) -> None:
        if self.fail_shot:
            raise RuntimeError("Simulated shutter failure")
        Path(path).write_bytes(self.payload)
        self.shots += 1

    def close(self) -> None:
        self.opened = False


class FakeSound:
    def __init__(self, player: "FakeSoundPlayer"):
        self.player = player
        self.playing = False
        self.unloaded = False

    def play(self) -> None:
        if self.player.fail_play:
            raise RuntimeError("Simulated audio device failure")
        self.playing = True

    def stop(self) -> None:
        self.playing = False

    def unload(self) -> None:
        self.unloaded = True


class FakeSoundPlayer:
    """Records every sound it loads."""

    def __init__(self, fail_play: bool = False):
        self.fail_play = fail_play
        self.sounds: list[FakeSound] = []

    @property
    def current(self) -> Optional[FakeSound]:
        return self.sounds[-1] if self.sounds else None

    def load(self) -> FakeSound:
        sound = FakeSound(self)
        self.sounds.append(sound)
        return sound
