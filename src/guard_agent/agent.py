from __future__ import annotations

import logging
from typing import Optional

import httpx

from .config import GuardSettings
from .devices.camera import CameraDevice, CaptureAdapter, OpenCVCamera
from .devices.fakes import FakeCamera, FakeProximitySensor, FakeSoundPlayer
from .devices.proximity import ProximityDriver, SensorAdapter
from .devices.siren import AlarmSoundController, SoundPlayer, TonePlayer
from .devices.tcp_sensor import TCPProximityDriver
from .gateway import GatewayTimeouts, ServerGateway
from .models import ConnectionStatus
from .orchestrator import TriggerOrchestrator
from .poller import ConnectionMonitor, RemoteStatePoller
from .state import GuardStateStore

logger = logging.getLogger(__name__)


class GuardAgent:
    """
    Wires devices, gateway, orchestrator and the periodic loops together.

    Use from_settings() for real hardware and simulated() for dry runs.
    """

    def __init__(
        self,
        cfg: GuardSettings,
        *,
        sensor_driver: Optional[ProximityDriver],
        camera: CameraDevice,
        player: SoundPlayer,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cfg = cfg
        self.store = GuardStateStore()
        self.gateway = ServerGateway(
            cfg.server_base_url,
            GatewayTimeouts.from_settings(cfg),
            transport=transport,
            on_status=self._on_connection_status,
            poll_failure_limit=cfg.poll_failure_limit,
        )

        self.sensor_driver = sensor_driver
        self.sensor = SensorAdapter(sensor_driver)
        self.capture = CaptureAdapter(camera, cfg.photo_dir, cfg.photo_library_dir)
        self.siren = AlarmSoundController(player)

        self.poller = RemoteStatePoller(self.gateway, self.store, cfg.poll_interval_ms / 1000)
        self.monitor = ConnectionMonitor(self.gateway, cfg.reconnect_interval_sec)
        self.orchestrator = TriggerOrchestrator(
            cfg, self.sensor, self.capture, self.siren, self.gateway, self.store, self.poller
        )
        self._started = False

    @classmethod
    def from_settings(cls, cfg: GuardSettings) -> "GuardAgent":
        driver = None
        if cfg.sensor_enabled:
            driver = TCPProximityDriver(cfg.sensor_tcp_host, cfg.sensor_tcp_port, cfg.sensor_distance_unit)
        return cls(
            cfg,
            sensor_driver=driver,
            camera=OpenCVCamera(cfg.camera_index, cfg.jpeg_quality),
            player=TonePlayer(cfg.alarm_frequency_hz),
        )

    @classmethod
    def simulated(
        cls,
        cfg: GuardSettings,
        *,
        sensor_available: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "GuardAgent":
        """Agent with in-memory devices; only the server is real."""
        return cls(
            cfg,
            sensor_driver=FakeProximitySensor(available=sensor_available),
            camera=FakeCamera(),
            player=FakeSoundPlayer(),
            transport=transport,
        )

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self, arm: bool = False) -> None:
        if self._started:
            return

        start_driver = getattr(self.sensor_driver, "start", None)
        if start_driver is not None:
            try:
                await start_driver()
            except OSError as exc:
                logger.error("Proximity feed could not start: %s", exc)

        available = self.orchestrator.refresh_sensor_availability()
        logger.info("Proximity sensor: %s", "available" if available else "not available")

        # The monitor's first tick pings right away.
        self.monitor.start()
        self.poller.start()
        self._started = True

        if arm:
            await self.orchestrator.arm()

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False

        await self.orchestrator.shutdown()
        await self.poller.stop()
        await self.monitor.stop()

        stop_driver = getattr(self.sensor_driver, "stop", None)
        if stop_driver is not None:
            await stop_driver()

        await self.gateway.aclose()
        logger.info("Guard agent stopped")

    def _on_connection_status(self, status: ConnectionStatus, last_error: Optional[str]) -> None:
        self.store.update(connection_status=status, last_error=last_error)
