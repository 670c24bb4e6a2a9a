"""Online/offline state with a latched `was_offline` flag.

`was_offline` becomes True on any offline transition and only goes back
to False through `reset_was_offline()`, so a "back online" banner can be
shown even if the online transition happened before anyone looked.
Listeners register through `subscribe()` and get a `Subscription` that
detaches them on `close()` or when its `with` block ends.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional

logger = logging.getLogger("dronegarden.offline.network")

RECONNECTED_BANNER_SECONDS = 3.0


class NetworkEvent(enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    RESET = "reset"


@dataclass(frozen=True)
class NetworkStatus:
    is_online: bool
    was_offline: bool = False


Listener = Callable[[NetworkEvent, NetworkStatus], None]


class Subscription:
    def __init__(self, monitor: "NetworkStatusMonitor", listener: Listener, on_close: Optional[Callable[[], None]] = None):
        self._monitor = monitor
        self._listener = listener
        self._on_close = on_close
        self.active = True

    def close(self) -> None:
        if self.active:
            self._monitor._detach(self._listener)
            self.active = False
            if self._on_close is not None:
                self._on_close()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class NetworkStatusMonitor:
    def __init__(self, online: bool = True):
        self._status = NetworkStatus(is_online=online)
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    @property
    def status(self) -> NetworkStatus:
        return self._status

    @property
    def is_online(self) -> bool:
        return self._status.is_online

    @property
    def was_offline(self) -> bool:
        return self._status.was_offline

    def handle_offline(self) -> None:
        with self._lock:
            previous = self._status
            self._status = NetworkStatus(is_online=False, was_offline=True)
        if previous.is_online:
            logger.info("network went offline")
        self._emit(NetworkEvent.OFFLINE)

    def handle_online(self) -> None:
        with self._lock:
            previous = self._status
            self._status = NetworkStatus(
                is_online=True,
                was_offline=previous.was_offline or not previous.is_online,
            )
        if not previous.is_online:
            logger.info("network back online")
        self._emit(NetworkEvent.ONLINE)

    def reset_was_offline(self) -> None:
        """Acknowledge the reconnect; `is_online` is left untouched."""
        with self._lock:
            self._status = replace(self._status, was_offline=False)
        self._emit(NetworkEvent.RESET)

    def subscribe(self, listener: Listener, on_close: Optional[Callable[[], None]] = None) -> Subscription:
        with self._lock:
            self._listeners.append(listener)
        return Subscription(self, listener, on_close)

    def _detach(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, event: NetworkEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
            status = self._status
        for listener in listeners:
            try:
                listener(event, status)
            except Exception:
                logger.exception("network listener failed on %s", event.value)


class ReconnectBanner:
    """Drives the transient "reconnected" banner.

    The banner is visible while the monitor is online with the latch set.
    `acknowledge_later()` waits for the display duration and then clears
    the latch, hiding the banner.
    """

    def __init__(self, monitor: NetworkStatusMonitor, display_seconds: float = RECONNECTED_BANNER_SECONDS):
        self.monitor = monitor
        self.display_seconds = display_seconds
        self._pending: Optional[asyncio.Task] = None

    @property
    def visible(self) -> bool:
        status = self.monitor.status
        return status.is_online and status.was_offline

    async def acknowledge_later(self) -> None:
        if not self.visible:
            return
        await asyncio.sleep(self.display_seconds)
        self.monitor.reset_was_offline()

    def cancel(self) -> None:
        """Drop a scheduled acknowledgement, if any."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def attach(self) -> Subscription:
        """Schedule the acknowledgement whenever the network comes back.

        Must be called from a running event loop. Going offline again
        cancels a scheduled acknowledgement, and so does closing the
        returned subscription.
        """
        loop = asyncio.get_running_loop()

        def on_event(event: NetworkEvent, status: NetworkStatus) -> None:
            if event is NetworkEvent.OFFLINE:
                self.cancel()
            elif event is NetworkEvent.ONLINE and status.was_offline:
                self.cancel()
                self._pending = loop.create_task(self.acknowledge_later())

        return self.monitor.subscribe(on_event, on_close=self.cancel)
