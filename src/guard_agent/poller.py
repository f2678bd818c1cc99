"""
Periodic server-side loops.

RemoteStatePoller mirrors the server alarm flag into the guard state while the
server is connected. ConnectionMonitor pings the server while it is not, so
polling can resume after an outage. Neither loop ever raises into the
orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from .errors import ServerConnectionError
from .gateway import ServerGateway
from .models import ConnectionStatus, RemoteAlarmState
from .state import GuardStateStore

logger = logging.getLogger(__name__)


class _PeriodicTask(ABC):
    """Base class: runs tick() every interval_sec on the current event loop."""

    def __init__(self, interval_sec: float, name: str):
        self.interval_sec = interval_sec
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @abstractmethod
    async def tick(self) -> None:
        ...

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                # Keep the loop alive; the next tick retries.
                logger.exception("%s tick failed", self.name)
            await asyncio.sleep(self.interval_sec)


class RemoteStatePoller(_PeriodicTask):
    """Polls GET /get-alarm-status while the server is connected."""

    def __init__(self, gateway: ServerGateway, store: GuardStateStore, interval_sec: float = 3.0):
        super().__init__(interval_sec, name="remote-alarm-poller")
        self.gateway = gateway
        self.store = store

    async def tick(self) -> None:
        if self.store.state.connection_status is ConnectionStatus.CONNECTED:
            await self.poll_once()

    async def poll_once(self) -> Optional[RemoteAlarmState]:
        """
        Fetch the flag once and publish it.

        On failure the previous value is kept (stale but retained) and returned.
        """
        remote = await self.gateway.get_remote_alarm_state()
        if remote is None:
            logger.debug("Remote alarm poll failed; keeping last known state")
            return self.store.state.remote_alarm

        previous = self.store.state.remote_alarm
        if previous is None or previous.active != remote.active:
            logger.info("Server alarm is now %s", "ACTIVE" if remote.active else "inactive")
        self.store.update(remote_alarm=remote)
        return remote


class ConnectionMonitor(_PeriodicTask):
    """Pings the server at start-up and then whenever it is not connected."""

    def __init__(self, gateway: ServerGateway, interval_sec: float = 30.0):
        super().__init__(interval_sec, name="connection-monitor")
        self.gateway = gateway

    async def tick(self) -> None:
        if self.gateway.connection_status is ConnectionStatus.CONNECTED:
            return
        await self.check()

    async def check(self) -> bool:
        try:
            await self.gateway.ping()
        except ServerConnectionError as exc:
            logger.info("Alarm server not reachable: %s", exc)
            return False
        return True
