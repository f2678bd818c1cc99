"""
Trigger orchestrator.

Finite-state machine for one alarm episode at a time:

    IDLE -> TRIGGERING -> SETTLING -> IDLE

On a trigger it fans out, without one branch blocking another from starting:
1. start the local siren (best-effort)
2. send the alert to the server (outcome recorded, never gates the photo)
3. after a settle delay, capture one photo
4. on capture success, upload the photo (outcome recorded, never retried)

When every branch has settled it holds SETTLING for a grace period, then
finalizes the episode and returns to IDLE. Triggers that arrive while an
episode is in flight are dropped, never queued.

Everything runs on one event loop. Branch completions are serialized back on
it, so episode fields need no locking: only this class writes them.
"""

from __future__ import annotations

import asyncio
import logging
import platform
from typing import Optional

from .config import GuardSettings
from .devices.camera import CaptureAdapter
from .devices.proximity import SensorAdapter
from .devices.siren import AlarmSoundController
from .errors import (
    AlertSendError,
    CaptureFailure,
    PhotoSendError,
    UnexpectedOrchestratorError,
)
from .gateway import ServerGateway
from .models import (
    ArmState,
    Notice,
    NoticeKind,
    OrchestratorPhase,
    ProximityReading,
    RemoteAlarmState,
    TriggerEpisode,
    utc_now,
)
from .poller import RemoteStatePoller
from .schemas import AlertPayload, DeviceInfo, SensorData, ServerAck
from .state import GuardStateStore

logger = logging.getLogger(__name__)


class TriggerOrchestrator:
    """
    Drives sensor, camera, siren and gateway through one alarm episode.

    Args:
        cfg: Threshold, delays and manual-trigger policy
        sensor: Proximity sensor adapter
        capture: Photo capture adapter
        siren: Local alarm sound controller
        gateway: Alarm server gateway
        store: Observable state shared with the UI layer
        poller: Remote state poller, refreshed right after an alert is accepted
    """

    def __init__(
        self,
        cfg: GuardSettings,
        sensor: SensorAdapter,
        capture: CaptureAdapter,
        siren: AlarmSoundController,
        gateway: ServerGateway,
        store: Optional[GuardStateStore] = None,
        poller: Optional[RemoteStatePoller] = None,
    ):
        self.cfg = cfg
        self.sensor = sensor
        self.capture = capture
        self.siren = siren
        self.gateway = gateway
        self.store = store or GuardStateStore()
        self.poller = poller
        self._task: Optional[asyncio.Task] = None

    @property
    def phase(self) -> OrchestratorPhase:
        return self.store.state.phase

    @property
    def arm_state(self) -> ArmState:
        return self.store.state.arm_state

    # ------------------------------------------------------------------
    # Arm / disarm
    # ------------------------------------------------------------------

    async def arm(self) -> None:
        if self.arm_state is ArmState.ARMED:
            return

        handle = self.sensor.subscribe(self.handle_reading) if self.sensor.is_available() else None
        sensor_live = handle is not None

        self.store.update(
            arm_state=ArmState.ARMED,
            sensor_available=sensor_live,
            manual_trigger_available=self._manual_allowed(sensor_live),
        )

        if sensor_live:
            self.store.post_notice(Notice(
                NoticeKind.INFO,
                "Security mode activated",
                "The system will detect intruders and trigger an alarm.",
            ))
        else:
            self.store.post_notice(Notice(
                NoticeKind.INFO,
                "Sensor not available",
                "The proximity sensor is not available on this device. "
                "Use the manual trigger to simulate a detection.",
            ))

    async def disarm(self) -> None:
        """
        Stop evaluating readings and silence the siren.

        In-flight server calls are left to finish; their results are no
        longer published.
        """
        if self.arm_state is ArmState.DISARMED:
            return

        self.sensor.unsubscribe()

        episode = self.store.state.current_episode
        changes = {"arm_state": ArmState.DISARMED, "manual_trigger_available": False}
        if episode is not None:
            episode.detached = True
            changes["current_episode"] = None
            logger.info("Disarmed during episode %s; in-flight results will be discarded", episode.episode_id)
        self.store.update(**changes)

        await self.stop_local_alarm()

    def refresh_sensor_availability(self) -> bool:
        """Re-read sensor availability (e.g. after the sensor feed started)."""
        available = self.sensor.is_available()
        armed = self.arm_state is ArmState.ARMED
        if armed and available and not self.sensor.is_subscribed:
            available = self.sensor.subscribe(self.handle_reading) is not None
        self.store.update(
            sensor_available=available,
            manual_trigger_available=armed and self._manual_allowed(available),
        )
        return available

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def handle_reading(self, reading: ProximityReading) -> Optional[TriggerEpisode]:
        """Evaluate one sensor reading; returns the new episode if it fired."""
        if self.arm_state is not ArmState.ARMED:
            return None
        if reading.distance_mm >= self.cfg.close_range_threshold_mm:
            return None
        if self.phase is not OrchestratorPhase.IDLE:
            logger.debug("Dropping close-range reading %.1fmm: episode in flight", reading.distance_mm)
            return None

        logger.info(
            "Close-range reading %.1fmm (threshold %.1fmm): object detected",
            reading.distance_mm, self.cfg.close_range_threshold_mm,
        )
        return self._begin_episode(reading=reading, manual=False)

    def manual_trigger(self) -> Optional[TriggerEpisode]:
        """
        Fallback trigger for devices without a working sensor.

        Accepted only when armed, idle, and the sensor is unavailable (or
        allow_manual_trigger is set). Returns None when rejected.
        """
        if self.arm_state is not ArmState.ARMED:
            logger.info("Manual trigger rejected: security mode is off")
            return None
        if not self._manual_allowed(self.sensor.is_available()):
            logger.info("Manual trigger rejected: proximity sensor is available")
            return None
        if self.phase is not OrchestratorPhase.IDLE:
            logger.debug("Manual trigger dropped: episode in flight")
            return None

        logger.info("Manual trigger accepted")
        return self._begin_episode(reading=None, manual=True)

    def _manual_allowed(self, sensor_available: bool) -> bool:
        return self.cfg.allow_manual_trigger or not sensor_available

    # ------------------------------------------------------------------
    # User actions available in any phase
    # ------------------------------------------------------------------

    async def stop_local_alarm(self) -> None:
        await self.siren.stop()
        self.store.update(local_alarm_active=False)

    async def stop_remote_alarm(self) -> ServerAck:
        """Switch off the server alarm. StopAlarmError propagates to the caller."""
        logger.info("Requesting server alarm stop")
        ack = await self.gateway.stop_remote_alarm()
        self.store.update(remote_alarm=RemoteAlarmState(active=False))
        self.store.post_notice(Notice(
            NoticeKind.INFO, "Server alarm stopped", "The alarm on the server was switched off.",
        ))
        return ack

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until the in-flight episode (if any) is back to IDLE."""
        task = self._task
        if task is not None:
            # asyncio.wait does not cancel the episode if our caller is cancelled.
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        self.sensor.unsubscribe()
        await self.wait_idle()
        await self.stop_local_alarm()

    # ------------------------------------------------------------------
    # Episode
    # ------------------------------------------------------------------

    def _begin_episode(self, reading: Optional[ProximityReading], manual: bool) -> TriggerEpisode:
        episode = TriggerEpisode(source_reading=reading, manual=manual)

        # Phase flips synchronously, before any await: this is the dedup gate.
        self.store.update(
            phase=OrchestratorPhase.TRIGGERING,
            camera_active=True,
            current_episode=episode,
            episodes_started=self.store.state.episodes_started + 1,
        )
        self._task = asyncio.get_running_loop().create_task(
            self._run_episode(episode), name=f"episode-{episode.episode_id[:8]}"
        )
        return episode

    async def _run_episode(self, episode: TriggerEpisode) -> None:
        logger.warning("Security procedure started (episode=%s, manual=%s)", episode.episode_id, episode.manual)

        siren_task = asyncio.create_task(self._start_siren(episode))
        alert_task = asyncio.create_task(self._send_alert(episode))
        try:
            try:
                await self._capture_and_upload(episode)
            except Exception as exc:
                self._record_failure(episode, "photo capture", exc)

            outcomes = await asyncio.gather(siren_task, alert_task, return_exceptions=True)
            for stage, outcome in zip(("alarm start", "alert send"), outcomes):
                if isinstance(outcome, Exception):
                    self._record_failure(episode, stage, outcome)

            self.store.update(phase=OrchestratorPhase.SETTLING)
            await asyncio.sleep(self.cfg.settle_grace_ms / 1000)
        finally:
            await self._finish(episode)

    async def _start_siren(self, episode: TriggerEpisode) -> None:
        started = await self.siren.start()
        if started and episode.detached:
            # Disarmed before the siren came up.
            await self.siren.stop()
            started = False

        episode.local_alarm_active = started
        self.store.update(local_alarm_active=self.siren.is_active)
        if not started and self.siren.last_error:
            logger.warning("Local alarm unavailable for episode %s: %s", episode.episode_id, self.siren.last_error)

    async def _send_alert(self, episode: TriggerEpisode) -> None:
        try:
            await self.gateway.send_alert(self._alert_payload(episode))
        except AlertSendError as exc:
            episode.alert_error = exc
            logger.warning("Alert for episode %s not delivered: %s", episode.episode_id, exc)
            self._publish_progress(episode)
            return

        episode.alert_sent = True
        logger.info("Alert for episode %s delivered", episode.episode_id)
        self._publish_progress(episode)

        # The server usually raises its own alarm on /alert; mirror it right away.
        if self.poller is not None and not episode.detached:
            await self.poller.poll_once()

    async def _capture_and_upload(self, episode: TriggerEpisode) -> None:
        try:
            await self.capture.activate()
            await asyncio.sleep(self.cfg.capture_settle_delay_ms / 1000)
            photo = await self.capture.capture_photo()
        except CaptureFailure as exc:
            episode.capture_error = exc
            logger.warning("No photo for episode %s: %s", episode.episode_id, exc)
            self._publish_progress(episode)
            return

        episode.photo = photo
        self._publish_progress(episode)

        try:
            await self.gateway.send_photo(photo)
        except PhotoSendError as exc:
            episode.photo_send_error = exc
            logger.warning("Photo for episode %s not delivered: %s", episode.episode_id, exc)
            self._publish_progress(episode)
            return

        episode.photo_sent = True
        logger.info("Photo for episode %s delivered", episode.episode_id)
        self._publish_progress(episode)

    def _alert_payload(self, episode: TriggerEpisode) -> AlertPayload:
        reading = episode.source_reading or self.sensor.last_reading
        return AlertPayload(
            timestamp=episode.started_at,
            sensor_data=SensorData(
                proximity_distance=reading.distance_mm if reading else 0.0,
                proximity_accuracy=reading.accuracy if reading else 0.0,
                manual_trigger=episode.manual,
            ),
            device_info=DeviceInfo(
                agent_id=self.cfg.agent_id,
                device_name=f"{self.cfg.device_name} ({platform.system() or 'unknown'})",
                episode_id=episode.episode_id,
            ),
        )

    def _record_failure(self, episode: TriggerEpisode, stage: str, exc: BaseException) -> None:
        logger.error("Unexpected error during %s (episode=%s)", stage, episode.episode_id, exc_info=exc)
        if episode.failure is None:
            failure = UnexpectedOrchestratorError(f"{stage} failed: {exc}", episode.episode_id)
            failure.__cause__ = exc
            episode.failure = failure

    def _publish_progress(self, episode: TriggerEpisode) -> None:
        if not episode.detached:
            self.store.update(current_episode=episode)

    async def _finish(self, episode: TriggerEpisode) -> None:
        await self.capture.deactivate()
        episode.completed_at = utc_now()

        changes = {
            "phase": OrchestratorPhase.IDLE,
            "camera_active": False,
            "current_episode": None,
        }
        if not episode.detached:
            changes["last_episode"] = episode
        self.store.update(**changes)
        self._task = None

        logger.info(
            "Security procedure finished (episode=%s alert_sent=%s photo_sent=%s failure=%s)",
            episode.episode_id, episode.alert_sent, episode.photo_sent, episode.failure is not None,
        )

        # The siren keeps running here; only the user silences it.
        if episode.failure is not None and not episode.detached:
            self.store.post_notice(Notice(
                NoticeKind.CRITICAL,
                "Security system error",
                f"An error occurred while triggering the alarm: {episode.failure}",
            ))
