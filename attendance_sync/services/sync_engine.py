"""Sync engine: drains unsynced queue items into the remote attendance store.

One drain cycle at a time. Items are processed sequentially in enqueue order;
the remote record always wins over a queued mark for the same
(student, subject, date). Outcomes are kept in memory until the cycle is done,
then written back onto a freshly loaded queue in a single save, followed by
pruning of old synced items.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from attendance_sync.errors import (
    RemoteValidationError,
    UniqueConstraintViolation,
)
from attendance_sync.models.queue import OfflineSyncQueue, QueueItem, QueueItemType
from attendance_sync.models.sync import SyncReport
from attendance_sync.services.connectivity import ConnectivityMonitor
from attendance_sync.services.queue_store import QueueStore
from attendance_sync.services.remote_store import RemoteAttendanceStore
from attendance_sync.services.state import OfflineState

logger = logging.getLogger(__name__)


class ItemOutcome(str, Enum):
    UPLOADED = "uploaded"
    CONFLICT = "conflict"
    RETRY = "retry"
    FAILED = "failed"


ItemHandler = Callable[[QueueItem], Awaitable[ItemOutcome]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    def __init__(
        self,
        store: QueueStore,
        remote: RemoteAttendanceStore,
        monitor: ConnectivityMonitor,
        state: OfflineState,
        *,
        retention_days: int = 30,
        max_retries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._remote = remote
        self._monitor = monitor
        self._state = state
        self.retention = timedelta(days=retention_days)
        self.max_retries = max_retries
        self._clock = clock
        self._syncing = False
        self._in_flight: Optional[str] = None
        self._tasks: set[asyncio.Task] = set()
        self._handlers: dict[QueueItemType, ItemHandler] = {
            QueueItemType.ATTENDANCE_MARK: self._sync_attendance_mark,
        }

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def in_flight_id(self) -> Optional[str]:
        """Id of the item whose remote calls are currently running, if any."""
        return self._in_flight

    def register_handler(self, item_type: QueueItemType, handler: ItemHandler) -> None:
        self._handlers[item_type] = handler

    def request_sync(self) -> asyncio.Task:
        """Fire-and-forget drain. Must be called from a running event loop."""
        task = asyncio.create_task(self._run_drain(), name="offline-sync-drain")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_drain(self) -> Optional[SyncReport]:
        try:
            return await self.drain()
        except Exception as e:
            logger.error(f"Offline sync drain failed: {e}")
            return None

    async def drain(self) -> Optional[SyncReport]:
        """Run one drain cycle. Returns None when offline or already draining."""
        if not self._monitor.is_online or self._syncing:
            return None
        self._syncing = True
        self._state.update(is_syncing=True)
        try:
            return await self._drain()
        finally:
            self._syncing = False
            self._state.update(is_syncing=False)

    async def _drain(self) -> SyncReport:
        report = SyncReport(started_at=self._clock())
        queue = await self._store.load_for_use()
        pending = queue.pending()

        if pending:
            for item in pending:
                if not await self._claim(item):
                    report.superseded += 1
                    logger.info(f"Queue item {item.id} was superseded before upload, skipping")
                    continue
                try:
                    outcome = await self._sync_item(item)
                finally:
                    self._in_flight = None
                if outcome is ItemOutcome.UPLOADED:
                    report.uploaded += 1
                elif outcome is ItemOutcome.CONFLICT:
                    report.conflicts += 1
                elif outcome is ItemOutcome.RETRY:
                    report.retried += 1
                else:
                    report.failed += 1
            queue, _ = await self._store.update(lambda q: q.apply(pending))

        cutoff = self._clock() - self.retention
        if any(item.synced and item.timestamp < cutoff for item in queue.queue):
            queue, report.pruned = await self._store.update(lambda q: q.prune(cutoff))
            logger.info(f"Pruned {report.pruned} synced queue item(s) older than {cutoff.isoformat()}")

        self._publish(queue)
        report.finished_at = self._clock()
        if report.processed:
            logger.info(
                f"Drain finished: {report.uploaded} uploaded, {report.conflicts} conflicts, "
                f"{report.retried} retried, {report.failed} failed"
            )
        return report

    async def _claim(self, item: QueueItem) -> bool:
        """Mark ``item`` as in flight if it is still in the persisted queue."""
        def check(queue: OfflineSyncQueue) -> bool:
            if item.id not in queue.ids():
                return False
            self._in_flight = item.id
            return True

        return await self._store.inspect(check)

    def _publish(self, queue: OfflineSyncQueue) -> None:
        self._state.update(
            queue_count=queue.unsynced_count(),
            failed_count=queue.failed_count(),
        )

    async def _sync_item(self, item: QueueItem) -> ItemOutcome:
        handler = self._handlers.get(item.type)
        if handler is None:
            return self._fail(item, f"No sync handler for item type {item.type.value}")
        try:
            outcome = await handler(item)
        except UniqueConstraintViolation:
            logger.info(f"Queue item {item.id}: remote record created concurrently, keeping server data")
            item.synced = True
            return ItemOutcome.CONFLICT
        except RemoteValidationError as e:
            item.retries += 1
            return self._fail(item, str(e))
        except Exception as e:
            item.retries += 1
            item.last_error = str(e)
            if self.max_retries is not None and item.retries >= self.max_retries:
                return self._fail(item, f"Gave up after {item.retries} attempts: {e}")
            logger.warning(f"Queue item {item.id} sync failed (attempt {item.retries}): {e}")
            return ItemOutcome.RETRY
        if outcome in (ItemOutcome.UPLOADED, ItemOutcome.CONFLICT):
            item.synced = True
            item.last_error = None
        return outcome

    def _fail(self, item: QueueItem, reason: str) -> ItemOutcome:
        item.failed = True
        item.last_error = reason
        logger.error(f"Queue item {item.id} will not be retried: {reason}")
        return ItemOutcome.FAILED

    async def _sync_attendance_mark(self, item: QueueItem) -> ItemOutcome:
        data = item.payload
        existing = await self._remote.find_record(data.student_id, data.subject_id, data.date)
        if existing is not None:
            logger.info(
                f"Queue item {item.id}: server already has attendance for "
                f"{data.student_id}/{data.subject_id}/{data.date}, server data takes precedence"
            )
            return ItemOutcome.CONFLICT
        await self._remote.insert_record(
            student_id=data.student_id,
            subject_id=data.subject_id,
            date=data.date,
            status=data.status,
            marked_by=data.marked_by,
            notes=data.notes,
        )
        return ItemOutcome.UPLOADED
