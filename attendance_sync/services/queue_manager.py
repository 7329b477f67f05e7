"""Queue manager: builds queue items, persists them and kicks the sync engine."""
import logging
import time
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from attendance_sync.errors import AttendanceValidationError
from attendance_sync.models.attendance import AttendanceMarkData
from attendance_sync.models.queue import OfflineSyncQueue, QueueItem, QueueItemType
from attendance_sync.services.connectivity import ConnectivityMonitor
from attendance_sync.services.queue_store import QueueStore
from attendance_sync.services.state import OfflineState
from attendance_sync.services.sync_engine import SyncEngine, utcnow

logger = logging.getLogger(__name__)


def new_item_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class QueueManager:
    def __init__(
        self,
        store: QueueStore,
        monitor: ConnectivityMonitor,
        engine: SyncEngine,
        state: OfflineState,
        *,
        max_past_days: int = 90,
        dedupe_pending_marks: bool = False,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_item_id,
    ):
        self._store = store
        self._monitor = monitor
        self._engine = engine
        self._state = state
        self.max_past_days = max_past_days
        self.dedupe_pending_marks = dedupe_pending_marks
        self._clock = clock
        self._id_factory = id_factory

    @property
    def queue_count(self) -> int:
        return self._state.queue_count

    async def refresh_count(self) -> OfflineSyncQueue:
        queue = await self._store.load_for_use()
        self._publish(queue)
        return queue

    async def snapshot(self) -> OfflineSyncQueue:
        return await self._store.load_for_use()

    def validate_mark(self, data: AttendanceMarkData, today: Optional[date] = None) -> None:
        """Reject dates in the future or further back than ``max_past_days``."""
        today = today or self._clock().astimezone().date()
        if data.date > today:
            raise AttendanceValidationError(f"Cannot mark attendance for a future date ({data.date})")
        if data.date < today - timedelta(days=self.max_past_days):
            raise AttendanceValidationError(
                f"Cannot mark attendance more than {self.max_past_days} days in the past ({data.date})"
            )

    async def enqueue_attendance_mark(self, data: AttendanceMarkData) -> QueueItem:
        self.validate_mark(data)
        items = await self._enqueue([(QueueItemType.ATTENDANCE_MARK, data)])
        return items[0]

    async def enqueue_attendance_batch(self, records: Iterable[AttendanceMarkData]) -> list[QueueItem]:
        records = list(records)
        for data in records:
            self.validate_mark(data)
        if not records:
            return []
        return await self._enqueue([(QueueItemType.ATTENDANCE_MARK, data) for data in records])

    async def enqueue(self, item_type: QueueItemType, payload: AttendanceMarkData) -> QueueItem:
        items = await self._enqueue([(item_type, payload)])
        return items[0]

    async def _enqueue(self, entries: list[tuple[QueueItemType, AttendanceMarkData]]) -> list[QueueItem]:
        def mutate(queue: OfflineSyncQueue) -> tuple[list[QueueItem], int]:
            created = []
            superseded = 0
            for item_type, payload in entries:
                if self.dedupe_pending_marks and item_type is QueueItemType.ATTENDANCE_MARK:
                    # The item being uploaded right now stays; its remote write may already be done
                    in_flight = self._engine.in_flight_id
                    older = [item.id for item in queue.find_pending(payload.key())]
                    if in_flight in older:
                        logger.info(f"Pending mark {in_flight} is being uploaded and cannot be replaced")
                    superseded += queue.remove(i for i in older if i != in_flight)
                item = QueueItem(
                    id=self._unique_id(queue),
                    type=item_type,
                    payload=payload,
                    timestamp=self._clock(),
                )
                queue.append(item)
                created.append(item)
            return created, superseded

        queue, (created, superseded) = await self._store.update(mutate)
        if superseded:
            logger.info(f"Replaced {superseded} pending mark(s) with newer intents")
        for item in created:
            logger.debug(f"Queued {item.type.value} {item.id} for {item.payload.key()}")
        self._publish(queue)

        if self._monitor.is_online:
            self._engine.request_sync()
        return created

    def _unique_id(self, queue: OfflineSyncQueue) -> str:
        taken = queue.ids()
        item_id = self._id_factory()
        while item_id in taken:
            item_id = self._id_factory()
        return item_id

    def _publish(self, queue: OfflineSyncQueue) -> None:
        self._state.update(
            queue_count=queue.unsynced_count(),
            failed_count=queue.failed_count(),
        )
