"""
Observable guard state.

One GuardState object is owned by the store and handed to the UI layer by
reference (snapshot()) or through subscriptions. Nothing here is a module
global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Callable, Optional

from .models import (
    ArmState,
    ConnectionStatus,
    Notice,
    OrchestratorPhase,
    RemoteAlarmState,
    TriggerEpisode,
)

logger = logging.getLogger(__name__)

StateListener = Callable[["GuardState"], None]


@dataclass
class GuardState:
    arm_state: ArmState = ArmState.DISARMED
    phase: OrchestratorPhase = OrchestratorPhase.IDLE

    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_error: Optional[str] = None
    remote_alarm: Optional[RemoteAlarmState] = None

    local_alarm_active: bool = False
    camera_active: bool = False
    sensor_available: bool = False
    manual_trigger_available: bool = False

    current_episode: Optional[TriggerEpisode] = None
    last_episode: Optional[TriggerEpisode] = None
    episodes_started: int = 0

    notice: Optional[Notice] = None


_FIELD_NAMES = frozenset(f.name for f in fields(GuardState))


class GuardStateStore:
    """Holds the GuardState and notifies subscribers on every update."""

    def __init__(self, state: Optional[GuardState] = None):
        self._state = state or GuardState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> GuardState:
        return self._state

    def update(self, **changes) -> None:
        unknown = set(changes) - _FIELD_NAMES
        if unknown:
            raise AttributeError(f"Unknown state fields: {sorted(unknown)}")

        for name, value in changes.items():
            setattr(self._state, name, value)
        self._notify()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def post_notice(self, notice: Notice) -> None:
        logger.info("Notice (%s): %s - %s", notice.kind.value, notice.title, notice.message)
        self.update(notice=notice)

    def acknowledge_notice(self) -> Optional[Notice]:
        notice = self._state.notice
        if notice is not None:
            self.update(notice=None)
        return notice

    def snapshot(self) -> dict:
        """JSON-ready view of the current state."""
        s = self._state
        return {
            "arm_state": s.arm_state.value,
            "phase": s.phase.value,
            "connection_status": s.connection_status.value,
            "last_error": s.last_error,
            "remote_alarm": s.remote_alarm.to_dict() if s.remote_alarm else None,
            "local_alarm_active": s.local_alarm_active,
            "camera_active": s.camera_active,
            "sensor_available": s.sensor_available,
            "manual_trigger_available": s.manual_trigger_available,
            "current_episode": s.current_episode.to_dict() if s.current_episode else None,
            "last_episode": s.last_episode.to_dict() if s.last_episode else None,
            "episodes_started": s.episodes_started,
            "notice": s.notice.to_dict() if s.notice else None,
        }

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                # A broken UI listener must not stop the others or the caller.
                logger.exception("State listener %r failed", listener)
