"""Offline context: per-session wiring of store, monitor, sync engine and queue manager."""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from attendance_sync.config import Settings, settings as default_settings
from attendance_sync.models.attendance import AttendanceMarkData
from attendance_sync.models.queue import OfflineSyncQueue, QueueItem
from attendance_sync.models.sync import NetworkState, OfflineStatus, SyncReport
from attendance_sync.services.connectivity import (
    ConnectivityMonitor,
    NetworkSource,
    ProbeNetworkSource,
    PushNetworkSource,
)
from attendance_sync.services.queue_manager import QueueManager
from attendance_sync.services.queue_store import QueueStore
from attendance_sync.services.remote_store import BeanieAttendanceStore, RemoteAttendanceStore
from attendance_sync.services.state import OfflineState
from attendance_sync.services.sync_engine import SyncEngine, utcnow

logger = logging.getLogger(__name__)


class OfflineContext:
    """Everything the presentation layer needs for offline attendance marking.

    Construct one per signed-in session, ``start()`` it, and ``stop()`` it on
    sign-out. It can also be used as an async context manager.
    """

    def __init__(
        self,
        *,
        store: QueueStore,
        remote: RemoteAttendanceStore,
        source: Optional[NetworkSource] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        config = config or default_settings
        self.store = store
        self.remote = remote
        self.source = source
        self.monitor = ConnectivityMonitor(source)
        self.state = OfflineState(is_online=self.monitor.is_online)
        self.engine = SyncEngine(
            store,
            remote,
            self.monitor,
            self.state,
            retention_days=config.retention_days,
            max_retries=config.max_retries,
            clock=clock,
        )
        self.manager = QueueManager(
            store,
            self.monitor,
            self.engine,
            self.state,
            max_past_days=config.max_past_days,
            dedupe_pending_marks=config.dedupe_pending_marks,
            clock=clock,
        )
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        self._unsubscribers = [
            self.monitor.add_listener(self._on_connectivity),
            self.monitor.on_reconnect(self._on_reconnect),
        ]
        await self.manager.refresh_count()
        await self.monitor.start()
        self._started = True
        logger.info(f"Offline context started with {self.queue_count} pending item(s)")

    async def stop(self) -> None:
        if not self._started:
            return
        await self.monitor.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self.engine.wait_idle()
        self._started = False

    async def __aenter__(self) -> "OfflineContext":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    def _on_connectivity(self, online: bool) -> None:
        self.state.update(is_online=online)

    def _on_reconnect(self) -> None:
        self.engine.request_sync()

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def is_syncing(self) -> bool:
        return self.engine.is_syncing

    @property
    def queue_count(self) -> int:
        return self.state.queue_count

    def status(self) -> OfflineStatus:
        return self.state.snapshot()

    def subscribe(self, callback: Callable[[OfflineStatus], None]) -> Callable[[], None]:
        return self.state.subscribe(callback)

    async def enqueue_attendance_mark(self, data: AttendanceMarkData) -> QueueItem:
        return await self.manager.enqueue_attendance_mark(data)

    async def enqueue_attendance_batch(self, records: Iterable[AttendanceMarkData]) -> list[QueueItem]:
        return await self.manager.enqueue_attendance_batch(records)

    async def force_sync_now(self) -> Optional[SyncReport]:
        return await self.engine.drain()

    async def queue_snapshot(self) -> OfflineSyncQueue:
        return await self.manager.snapshot()

    def push_network_state(self, state: NetworkState) -> None:
        if not isinstance(self.source, PushNetworkSource):
            raise RuntimeError("Network state can only be pushed when the push source is configured")
        self.source.push(state)


def create_offline_context(config: Optional[Settings] = None) -> OfflineContext:
    """Production wiring: file-backed queue, MongoDB remote store, configured network source."""
    config = config or default_settings
    store = QueueStore(
        config.storage_dir,
        config.sync_queue_key,
        corrupt_policy=config.corrupt_queue_policy,
    )
    if config.network_source == "push":
        source: NetworkSource = PushNetworkSource()
    else:
        source = ProbeNetworkSource(
            config.probe_host,
            config.probe_port,
            interval=config.probe_interval_seconds,
            timeout=config.probe_timeout_seconds,
        )
    return OfflineContext(
        store=store,
        remote=BeanieAttendanceStore(),
        source=source,
        config=config,
    )
