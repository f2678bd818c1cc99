"""
Local alarm sound.

AlarmSoundController keeps at most one sound resource. start() and stop() are
idempotent, and a playback failure is reported (False + last_error) instead of
raised: the siren is best-effort.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

import numpy as np

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100


@runtime_checkable
class SoundHandle(Protocol):
    def play(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def unload(self) -> None:
        ...


@runtime_checkable
class SoundPlayer(Protocol):
    def load(self) -> SoundHandle:
        ...


def siren_waveform(
    frequency_hz: float = 1000.0,
    low_ratio: float = 0.8,
    segment_sec: float = 0.2,
    sample_rate: int = SAMPLE_RATE,
    volume: float = 1.0,
) -> np.ndarray:
    """Two-tone siren cycle (high, low) as float32 samples in [-volume, volume]."""
    n = int(segment_sec * sample_rate)
    t = np.arange(n, dtype=np.float32) / sample_rate
    high = np.sin(2 * np.pi * frequency_hz * t)
    low = np.sin(2 * np.pi * frequency_hz * low_ratio * t)
    return (volume * np.concatenate([high, low])).astype(np.float32)


class _ToneSound:
    def __init__(self, sd, samples: np.ndarray, sample_rate: int):
        self._sd = sd
        self._samples = samples
        self._sample_rate = sample_rate

    def play(self) -> None:
        self._sd.play(self._samples, self._sample_rate, loop=True)

    def stop(self) -> None:
        self._sd.stop()

    def unload(self) -> None:
        self._samples = None


class TonePlayer:
    """Plays a synthesized looping siren through sounddevice at full volume."""

    def __init__(self, frequency_hz: float = 1000.0, sample_rate: int = SAMPLE_RATE):
        self.frequency_hz = frequency_hz
        self.sample_rate = sample_rate

    def load(self) -> _ToneSound:
        import sounddevice as sd

        samples = siren_waveform(self.frequency_hz, sample_rate=self.sample_rate, volume=1.0)
        return _ToneSound(sd, samples, self.sample_rate)


class AlarmSoundController:
    """Start/stop a single looping alarm sound."""

    def __init__(self, player: SoundPlayer):
        self.player = player
        self.last_error: Optional[str] = None
        self._sound: Optional[SoundHandle] = None
        self._active = False
        self._lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        return self._active

    async def start(self) -> bool:
        """Start the alarm. Returns False if playback failed."""
        async with self._lock:
            if self._active:
                return True

            # A leftover resource from a failed start is replaced, not leaked.
            if self._sound is not None:
                await self._release()

            try:
                self._sound = await asyncio.to_thread(self.player.load)
                await asyncio.to_thread(self._sound.play)
            except Exception as exc:
                logger.error("Error playing alarm: %s", exc)
                self.last_error = str(exc)
                await self._release()
                return False

            self._active = True
            self.last_error = None
            logger.info("Local alarm started")
            return True

    async def stop(self) -> None:
        """Stop the alarm. No-op when already stopped."""
        async with self._lock:
            if self._sound is None:
                return
            await self._release()
            logger.info("Local alarm stopped")

    async def _release(self) -> None:
        sound, self._sound = self._sound, None
        self._active = False
        if sound is None:
            return
        try:
            await asyncio.to_thread(sound.stop)
            await asyncio.to_thread(sound.unload)
        except Exception as exc:
            logger.warning("Error releasing alarm sound: %s", exc)
