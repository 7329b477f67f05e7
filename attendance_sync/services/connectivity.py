"""Connectivity monitor: online/offline signal with reconnect-edge callbacks.

Online means the network interface is connected AND the internet is actually
reachable. Platform network services feed ``NetworkState`` reports into the
monitor through a ``NetworkSource``.
"""
import asyncio
import logging
import socket
from typing import Any, Callable, Optional, Protocol

from attendance_sync.models.sync import NetworkState

logger = logging.getLogger(__name__)

StateCallback = Callable[[NetworkState], None]
Unsubscribe = Callable[[], None]


class NetworkSource(Protocol):
    def subscribe(self, callback: StateCallback) -> Unsubscribe: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class _Subscribers:
    def __init__(self):
        self._callbacks: list[Callable[..., Any]] = []

    def add(self, callback: Callable[..., Any]) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, *args) -> None:
        for callback in list(self._callbacks):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Connectivity callback {callback!r} failed: {e}")

    def __len__(self) -> int:
        return len(self._callbacks)


class PushNetworkSource:
    """Source fed by the host application (e.g. the native shell over HTTP)."""

    def __init__(self):
        self._subscribers = _Subscribers()
        self.last_state: Optional[NetworkState] = None

    def subscribe(self, callback: StateCallback) -> Unsubscribe:
        return self._subscribers.add(callback)

    def push(self, state: NetworkState) -> None:
        self.last_state = state
        self._subscribers.emit(state)

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None


class ProbeNetworkSource:
    """Polls reachability of a probe endpoint and reports state changes."""

    def __init__(
        self,
        host: str,
        port: int = 443,
        *,
        interval: float = 15.0,
        timeout: float = 3.0,
    ):
        self.host = host
        self.port = port
        self.interval = interval
        self.timeout = timeout
        self._subscribers = _Subscribers()
        self._task: Optional[asyncio.Task] = None
        self._last: Optional[NetworkState] = None

    def subscribe(self, callback: StateCallback) -> Unsubscribe:
        return self._subscribers.add(callback)

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="network-probe")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def probe(self) -> NetworkState:
        connected = await asyncio.to_thread(self._has_route)
        if not connected:
            return NetworkState(connected=False, internet_reachable=False)
        return NetworkState(connected=True, internet_reachable=await self._can_connect())

    def _has_route(self) -> bool:
        # UDP connect sends nothing; it only fails when no route exists
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect((self.host, self.port))
            return True
        except OSError:
            return False

    async def _can_connect(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def _run(self) -> None:
        while True:
            try:
                state = await self.probe()
            except Exception as e:
                logger.error(f"Network probe against {self.host}:{self.port} failed: {e}")
            else:
                if state != self._last:
                    self._last = state
                    self._subscribers.emit(state)
            await asyncio.sleep(self.interval)


class ConnectivityMonitor:
    """Tracks ``is_online`` and notifies on changes.

    Listeners added with ``add_listener`` get every change of the boolean.
    Callbacks added with ``on_reconnect`` fire once per offline -> online edge;
    the first observation counts as an edge when it reports online.
    """

    def __init__(self, source: Optional[NetworkSource] = None, *, initial_online: bool = True):
        self.source = source
        self._online = initial_online
        self._observed = False
        self._listeners = _Subscribers()
        self._reconnect = _Subscribers()
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, callback: Callable[[bool], None]) -> Unsubscribe:
        return self._listeners.add(callback)

    def on_reconnect(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._reconnect.add(callback)

    def handle_state(self, state: NetworkState) -> None:
        online = state.is_online
        was_online = self._online
        first = not self._observed
        self._observed = True
        self._online = online

        if online != was_online:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
            self._listeners.emit(online)
        if online and (first or not was_online):
            self._reconnect.emit()

    async def start(self) -> None:
        if self.source is None or self._unsubscribe is not None:
            return
        self._unsubscribe = self.source.subscribe(self.handle_state)
        await self.source.start()

    async def stop(self) -> None:
        if self.source is None or self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        await self.source.stop()
