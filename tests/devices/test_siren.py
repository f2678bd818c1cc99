import numpy as np
import pytest

from guard_agent.devices.fakes import FakeSoundPlayer
from guard_agent.devices.siren import AlarmSoundController, siren_waveform


@pytest.mark.asyncio
async def test_start_is_idempotent():
    player = FakeSoundPlayer()
    siren = AlarmSoundController(player)

    assert await siren.start() is True
    assert await siren.start() is True

    assert siren.is_active is True
    assert len(player.sounds) == 1
    assert player.current.playing is True


@pytest.mark.asyncio
async def test_stop_is_idempotent():
    player = FakeSoundPlayer()
    siren = AlarmSoundController(player)

    await siren.stop()
    await siren.start()
    await siren.stop()
    await siren.stop()

    assert siren.is_active is False
    assert player.current.playing is False
    assert player.current.unloaded is True


@pytest.mark.asyncio
async def test_playback_failure_is_reported_not_raised():
    player = FakeSoundPlayer(fail_play=True)
    siren = AlarmSoundController(player)

    assert await siren.start() is False

    assert siren.is_active is False
    assert "audio device" in siren.last_error
    # The half-loaded resource is released.
    assert player.current.unloaded is True


@pytest.mark.asyncio
async def test_start_after_failure_loads_fresh_sound():
    player = FakeSoundPlayer(fail_play=True)
    siren = AlarmSoundController(player)
    await siren.start()

    player.fail_play = False
    assert await siren.start() is True

    assert len(player.sounds) == 2
    assert player.sounds[0].unloaded is True
    assert player.current.playing is True
    assert siren.last_error is None


@pytest.mark.asyncio
async def test_restart_after_stop_loads_new_sound():
    player = FakeSoundPlayer()
    siren = AlarmSoundController(player)

    await siren.start()
    await siren.stop()
    await siren.start()

    assert len(player.sounds) == 2
    assert player.sounds[0].unloaded is True
    assert player.current.playing is True


def test_siren_waveform_is_two_tone_cycle():
    samples = siren_waveform(frequency_hz=1000, segment_sec=0.1, sample_rate=8000, volume=0.5)

    assert samples.dtype == np.float32
    assert samples.shape == (1600,)
    assert np.max(np.abs(samples)) <= 0.5 + 1e-6
    # High and low halves differ.
    assert not np.allclose(samples[:800], samples[800:])
