"""
Error taxonomy for the guard agent.

Fan-out failures (alert, photo, audio) are recorded on the episode and never
escape the orchestrator. UnexpectedOrchestratorError is the only error that
ends up as a blocking notice for the user.
"""


class GuardError(Exception):
    """Base class for all guard agent errors."""


class SensorUnavailable(GuardError):
    """The proximity sensor cannot deliver readings on this device."""


class CaptureFailure(GuardError):
    """A photo could not be taken or stored."""


class ServerConnectionError(GuardError):
    """The alarm server did not answer the ping as expected."""


class AlertSendError(GuardError):
    """POST /alert failed."""


class PhotoSendError(GuardError):
    """POST /upload-photo failed."""


class StopAlarmError(GuardError):
    """POST /stop-alarm failed."""


class UnexpectedOrchestratorError(GuardError):
    """An episode could not finish its normal settle path."""

    def __init__(self, message: str, episode_id: str | None = None):
        super().__init__(message)
        self.episode_id = episode_id
