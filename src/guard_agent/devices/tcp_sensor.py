"""
TCP proximity driver.

The sensor bridge on the phone pushes readings as newline-delimited JSON:

    {"distance_mm": 30, "accuracy": 1}

Each line is answered with a JSON ack. Parsed readings are handed to the
registered listeners on the event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from ..errors import SensorUnavailable
from ..models import ProximityReading
from .proximity import ReadingCallback

logger = logging.getLogger(__name__)


class _ListenerSubscription:
    def __init__(self, driver: "TCPProximityDriver", key: int):
        self._driver = driver
        self._key = key

    def remove(self) -> None:
        self._driver._listeners.pop(self._key, None)


class TCPProximityDriver:
    """
    Asyncio TCP server that receives proximity readings.

    The driver is available only while the server is running.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8129,
        distance_unit: str = "mm",
        max_line_bytes: int = 64 * 1024,
    ):
        """
        Args:
            host: Host address to bind to
            port: Port to listen on (0 = ephemeral, handy for tests)
            distance_unit: Unit of the plain "distance" key ("mm" or "cm")
            max_line_bytes: Longest accepted JSON line
        """
        self.host = host
        self.requested_port = port
        self.distance_unit = distance_unit
        self.max_line_bytes = max_line_bytes

        self._server: Optional[asyncio.Server] = None
        self._listeners: dict[int, ReadingCallback] = {}
        self._keys = itertools.count(1)
        self._client_tasks: set[asyncio.Task] = set()
        self.readings_received = 0

    @property
    def port(self) -> int:
        """
        Get the port actually bound.
        Important for tests when we start with port=0 (ephemeral port).
        """
        if self._server is None or not self._server.sockets:
            return self.requested_port
        return int(self._server.sockets[0].getsockname()[1])

    def is_available(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def add_listener(self, callback: ReadingCallback) -> _ListenerSubscription:
        if not self.is_available():
            raise SensorUnavailable("TCP proximity feed is not running")
        key = next(self._keys)
        self._listeners[key] = callback
        return _ListenerSubscription(self, key)

    async def start(self) -> None:
        """Bind and start accepting sensor connections."""
        if self._server is not None:
            return
        self._server = await asyncio.start_server(
            self._handle_client, self.host, self.requested_port, limit=self.max_line_bytes
        )
        logger.info("Proximity feed listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        """Stop the server + cancel active client handlers."""
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

        for t in list(self._client_tasks):
            t.cancel()

        # Give cancellations a chance to propagate
        await asyncio.sleep(0)
        logger.info("Proximity feed stopped")

    def _dispatch(self, reading: ProximityReading) -> None:
        self.readings_received += 1
        if not self._listeners:
            logger.debug("Reading %.1fmm dropped: no listener", reading.distance_mm)
            return
        for callback in list(self._listeners.values()):
            try:
                callback(reading)
            except Exception:
                logger.exception("Proximity listener failed")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task:
            self._client_tasks.add(task)

        peer = writer.get_extra_info("peername")
        logger.info("Sensor bridge connected: %s", peer)

        try:
            while True:
                try:
                    data = await reader.readline()
                except ValueError:
                    # Line longer than the stream limit; the framing is lost.
                    logger.warning("Oversized reading line from %s; closing connection", peer)
                    break
                if not data:
                    break  # client closed

                message = data.decode("utf-8", errors="replace").strip()
                if not message:
                    continue

                try:
                    reading = ProximityReading.from_json(json.loads(message), unit=self.distance_unit)
                except ValueError as e:
                    # Don't crash the feed on bad packets
                    logger.error("Invalid reading from %s: %s", peer, e)
                    await self._reply(writer, {"status": "error", "message": str(e)})
                    continue

                self._dispatch(reading)
                await self._reply(
                    writer,
                    {"status": "ok", "received_at": datetime.now(timezone.utc).isoformat()},
                )
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.warning("Sensor bridge connection error from %s: %s", peer, e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

            logger.info("Sensor bridge disconnected: %s", peer)

            if task:
                self._client_tasks.discard(task)

    @staticmethod
    async def _reply(writer: asyncio.StreamWriter, body: dict) -> None:
        writer.write((json.dumps(body) + "\n").encode("utf-8"))
        await writer.drain()
