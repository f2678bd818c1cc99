"""
HTTP boundary to the remote alarm server.

Every call is independent, carries a bounded timeout and reports failure as a
typed error. The gateway keeps one piece of state: the connection status
derived from the outcomes of its calls, pushed to an optional callback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from .errors import (
    AlertSendError,
    GuardError,
    PhotoSendError,
    ServerConnectionError,
    StopAlarmError,
)
from .models import ConnectionStatus, PhotoRef, RemoteAlarmState
from .schemas import AlarmStatusOut, AlertPayload, PingOut, ServerAck

logger = logging.getLogger(__name__)

StatusCallback = Callable[[ConnectionStatus, Optional[str]], None]

PHOTO_FILENAME = "intruder.jpg"
PHOTO_MIME = "image/jpeg"


@dataclass(frozen=True)
class GatewayTimeouts:
    """Per-call timeouts in seconds."""
    ping: float = 5.0
    alert: float = 10.0
    photo: float = 30.0
    status: float = 5.0
    stop_alarm: float = 10.0

    @classmethod
    def from_settings(cls, cfg) -> "GatewayTimeouts":
        return cls(
            ping=cfg.ping_timeout_sec,
            alert=cfg.alert_timeout_sec,
            photo=cfg.photo_timeout_sec,
            status=cfg.status_timeout_sec,
            stop_alarm=cfg.stop_alarm_timeout_sec,
        )


class ServerGateway:
    """
    Async client for the alarm server endpoints.

    Args:
        base_url: Server base URL, e.g. http://10.0.0.5:5000
        timeouts: Per-call timeouts
        transport: Optional httpx transport (tests pass httpx.MockTransport)
        on_status: Called with (status, last_error) whenever either changes
        poll_failure_limit: Consecutive failed status polls before the server
            is reported unreachable
    """

    def __init__(
        self,
        base_url: str,
        timeouts: Optional[GatewayTimeouts] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_status: Optional[StatusCallback] = None,
        poll_failure_limit: int = 3,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeouts = timeouts or GatewayTimeouts()
        self.on_status = on_status
        self.connection_status = ConnectionStatus.DISCONNECTED
        self.last_error: Optional[str] = None
        self.poll_failure_limit = poll_failure_limit
        self._poll_failures = 0
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def __aenter__(self) -> "ServerGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        """GET /ping; raises ServerConnectionError unless the body is {"status": "ok"}."""
        self._set_status(ConnectionStatus.CONNECTING, self.last_error)
        try:
            response = await self._request(
                "GET", "/ping", timeout=self.timeouts.ping, error_cls=ServerConnectionError
            )
            try:
                body = PingOut.model_validate(response.json())
            except ValueError as exc:
                raise ServerConnectionError(f"GET /ping returned an unexpected body: {exc}") from exc
            if body.status != "ok":
                raise ServerConnectionError(f"GET /ping returned status '{body.status}'")
        except ServerConnectionError as exc:
            self._record_failure(exc)
            raise

        self._record_success()
        logger.info("Alarm server reachable at %s", self.base_url)

    async def send_alert(self, payload: AlertPayload) -> ServerAck:
        """POST /alert with the episode metadata."""
        return await self._send(
            "POST",
            "/alert",
            timeout=self.timeouts.alert,
            error_cls=AlertSendError,
            json=payload.to_wire(),
        )

    async def send_photo(self, photo: PhotoRef) -> ServerAck:
        """POST /upload-photo as multipart: `photo` (jpeg) + `timestamp`."""
        try:
            data = await asyncio.to_thread(photo.path.read_bytes)
        except OSError as exc:
            raise PhotoSendError(f"Could not read photo {photo.path}: {exc}") from exc

        return await self._send(
            "POST",
            "/upload-photo",
            timeout=self.timeouts.photo,
            error_cls=PhotoSendError,
            files={"photo": (PHOTO_FILENAME, data, PHOTO_MIME)},
            data={"timestamp": photo.captured_at.isoformat()},
        )

    async def get_remote_alarm_state(self) -> Optional[RemoteAlarmState]:
        """
        GET /get-alarm-status.

        Polled continuously, so it never raises: any failure is logged at debug
        level and reported as None ("unknown").
        """
        try:
            response = await self._request(
                "GET",
                "/get-alarm-status",
                timeout=self.timeouts.status,
                error_cls=ServerConnectionError,
            )
            body = AlarmStatusOut.model_validate(response.json())
        except (ServerConnectionError, ValueError) as exc:
            logger.debug("Remote alarm status unavailable: %s", exc)
            self._record_poll_failure()
            return None

        self._record_success()
        return RemoteAlarmState(active=body.alarm_active)

    async def stop_remote_alarm(self) -> ServerAck:
        """POST /stop-alarm."""
        return await self._send(
            "POST", "/stop-alarm", timeout=self.timeouts.stop_alarm, error_cls=StopAlarmError
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, *, timeout: float, error_cls, **kwargs) -> ServerAck:
        try:
            response = await self._request(method, path, timeout=timeout, error_cls=error_cls, **kwargs)
            ack = self._parse_ack(response, error_cls, f"{method} {path}")
        except error_cls as exc:
            self._record_failure(exc)
            raise

        self._record_success()
        return ack

    async def _request(
        self, method: str, path: str, *, timeout: float, error_cls: type[GuardError], **kwargs
    ) -> httpx.Response:
        # httpx applies the timeout per phase; wait_for bounds the whole call.
        try:
            response = await asyncio.wait_for(
                self._client.request(method, path, timeout=timeout, **kwargs),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise error_cls(f"{method} {path} timed out after {timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise error_cls(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            raise error_cls(f"{method} {path} returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _parse_ack(response: httpx.Response, error_cls: type[GuardError], what: str) -> ServerAck:
        try:
            return ServerAck.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise error_cls(f"{what} returned an invalid acknowledgement: {exc}") from exc

    def _record_success(self) -> None:
        self._poll_failures = 0
        self._set_status(ConnectionStatus.CONNECTED, None)

    def _record_failure(self, exc: Exception) -> None:
        logger.warning("Alarm server call failed: %s", exc)
        self._set_status(ConnectionStatus.ERROR, str(exc))

    def _record_poll_failure(self) -> None:
        # last_error is left alone; polls never produce user-visible errors.
        self._poll_failures += 1
        if self._poll_failures >= self.poll_failure_limit and self.connection_status is ConnectionStatus.CONNECTED:
            logger.warning("Alarm server stopped answering status polls (%d in a row)", self._poll_failures)
            self._set_status(ConnectionStatus.ERROR, self.last_error)

    def _set_status(self, status: ConnectionStatus, last_error: Optional[str]) -> None:
        if status == self.connection_status and last_error == self.last_error:
            return
        self.connection_status = status
        self.last_error = last_error
        if self.on_status is not None:
            self.on_status(status, last_error)
