"""
Proximity sensor adapter.

Wraps a ProximityDriver and keeps at most one active subscription. When the
driver is missing or reports unavailable, subscribing is a no-op and the
orchestrator offers the manual trigger instead.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from ..errors import SensorUnavailable
from ..models import ProximityReading

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[ProximityReading], None]


@runtime_checkable
class DriverSubscription(Protocol):
    def remove(self) -> None:
        ...


@runtime_checkable
class ProximityDriver(Protocol):
    def is_available(self) -> bool:
        ...

    def add_listener(self, callback: ReadingCallback) -> DriverSubscription:
        """Start pushing readings to callback. Raises SensorUnavailable."""
        ...


@dataclass(frozen=True)
class SubscriptionHandle:
    handle_id: int


class SensorAdapter:
    """Single-subscription view over a proximity driver."""

    def __init__(self, driver: Optional[ProximityDriver] = None):
        self.driver = driver
        self.last_reading: Optional[ProximityReading] = None
        self._ids = itertools.count(1)
        self._handle: Optional[SubscriptionHandle] = None
        self._subscription: Optional[DriverSubscription] = None

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    def is_available(self) -> bool:
        if self.driver is None:
            return False
        try:
            return bool(self.driver.is_available())
        except Exception as exc:
            logger.error("Error checking proximity sensor availability: %s", exc)
            return False

    def subscribe(self, on_reading: ReadingCallback) -> Optional[SubscriptionHandle]:
        """
        Subscribe on_reading to the sensor, replacing any previous subscription.

        Returns None (and subscribes nothing) when the sensor is unavailable.
        """
        self.unsubscribe()

        if not self.is_available():
            logger.info("Proximity sensor is not available on this device")
            return None

        def deliver(reading: ProximityReading) -> None:
            self.last_reading = reading
            on_reading(reading)

        try:
            subscription = self.driver.add_listener(deliver)
        except SensorUnavailable as exc:
            logger.warning("Proximity sensor refused subscription: %s", exc)
            return None

        self._subscription = subscription
        self._handle = SubscriptionHandle(next(self._ids))
        logger.debug("Subscribed to proximity sensor (handle=%s)", self._handle.handle_id)
        return self._handle

    def unsubscribe(self, handle: Optional[SubscriptionHandle] = None) -> None:
        """Remove the active subscription. A stale handle is ignored."""
        if self._subscription is None:
            return
        if handle is not None and handle != self._handle:
            logger.debug("Ignoring stale subscription handle %s", handle.handle_id)
            return

        subscription, self._subscription = self._subscription, None
        self._handle = None
        try:
            subscription.remove()
        except Exception as exc:
            logger.warning("Error removing proximity subscription: %s", exc)
