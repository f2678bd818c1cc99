import asyncio

import httpx
import pytest

from guard_agent.config import GuardSettings


class FakeAlarmServer:
    """
    In-memory stand-in for the remote alarm server (served via httpx.MockTransport).

    - paths in `fail` answer HTTP 500
    - paths in `down` raise a connection error
    - paths in `delays` answer after that many seconds
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.alarm_active = False
        self.fail: set[str] = set()
        self.down: set[str] = set()
        self.delays: dict[str, float] = {}
        self.completed: list[str] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.delays:
            await asyncio.sleep(self.delays[path])
        response = self._respond(request, path)
        self.completed.append(path)
        return response

    def _respond(self, request: httpx.Request, path: str) -> httpx.Response:
        if path in self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if path in self.fail:
            return httpx.Response(500, json={"status": "error", "message": "boom"})

        if path == "/ping":
            return httpx.Response(200, json={"status": "ok"})
        if path == "/alert":
            self.alarm_active = True
            return httpx.Response(200, json={"status": "success", "message": "Alert received"})
        if path == "/upload-photo":
            return httpx.Response(200, json={"status": "success", "message": "Photo received"})
        if path == "/get-alarm-status":
            return httpx.Response(200, json={"alarm_active": self.alarm_active})
        if path == "/stop-alarm":
            self.alarm_active = False
            return httpx.Response(200, json={"status": "success", "message": "Alarm stopped"})
        return httpx.Response(404, json={"detail": "Not Found"})


@pytest.fixture
def server():
    return FakeAlarmServer()


@pytest.fixture
def cfg(tmp_path):
    # No waiting in tests unless a test asks for it.
    return GuardSettings(
        server_base_url="http://alarm.test",
        capture_settle_delay_ms=0,
        settle_grace_ms=0,
        photo_dir=tmp_path / "security",
    )
