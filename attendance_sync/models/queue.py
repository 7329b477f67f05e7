"""Offline sync queue: items, the persisted envelope and its codec."""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from attendance_sync.errors import StorageCorruptError
from attendance_sync.models.attendance import AttendanceMarkData

QUEUE_SCHEMA_VERSION = 1


class QueueItemType(str, Enum):
    ATTENDANCE_MARK = "attendance_mark"


class QueueItem(BaseModel):
    """A pending offline operation. Only the sync state fields are mutable."""

    id: str = Field(frozen=True)
    type: QueueItemType = Field(default=QueueItemType.ATTENDANCE_MARK, frozen=True)
    # Older clients persisted the payload under "data"
    payload: AttendanceMarkData = Field(
        frozen=True, validation_alias=AliasChoices("payload", "data")
    )
    timestamp: datetime = Field(frozen=True)
    synced: bool = False
    retries: int = 0
    failed: bool = False
    last_error: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_pending(self) -> bool:
        return not self.synced and not self.failed


class OfflineSyncQueue(BaseModel):
    version: int = QUEUE_SCHEMA_VERSION
    queue: list[QueueItem] = Field(default_factory=list)

    def ids(self) -> set[str]:
        return {item.id for item in self.queue}

    def append(self, item: QueueItem) -> None:
        if item.id in self.ids():
            raise ValueError(f"Duplicate queue item id: {item.id}")
        self.queue.append(item)

    def pending(self) -> list[QueueItem]:
        return [item for item in self.queue if item.is_pending]

    def unsynced_count(self) -> int:
        return sum(1 for item in self.queue if not item.synced)

    def failed_count(self) -> int:
        return sum(1 for item in self.queue if item.failed)

    def find_pending(self, key: tuple[str, str, date]) -> list[QueueItem]:
        return [item for item in self.pending() if item.payload.key() == key]

    def remove(self, item_ids: Iterable[str]) -> int:
        drop = set(item_ids)
        before = len(self.queue)
        self.queue = [item for item in self.queue if item.id not in drop]
        return before - len(self.queue)

    def apply(self, updated: Iterable[QueueItem]) -> int:
        """Copy sync state from ``updated`` onto items with the same id.

        Items that disappeared from the queue in the meantime are ignored.
        Returns how many items were updated.
        """
        by_id = {item.id: item for item in updated}
        applied = 0
        for item in self.queue:
            src = by_id.get(item.id)
            if src is None:
                continue
            item.synced = src.synced
            item.retries = src.retries
            item.failed = src.failed
            item.last_error = src.last_error
            applied += 1
        return applied

    def prune(self, cutoff: datetime) -> int:
        """Drop synced items created before ``cutoff``."""
        stale = [item.id for item in self.queue if item.synced and item.timestamp < cutoff]
        return self.remove(stale)


def encode_queue(queue: OfflineSyncQueue) -> bytes:
    return queue.model_dump_json(by_alias=False).encode("utf-8")


def decode_queue(raw: bytes | str) -> OfflineSyncQueue:
    try:
        queue = OfflineSyncQueue.model_validate_json(raw)
    except ValidationError as e:
        raise StorageCorruptError(f"Persisted queue failed to decode: {e}") from e
    if queue.version != QUEUE_SCHEMA_VERSION:
        raise StorageCorruptError(f"Unsupported queue schema version: {queue.version}")
    return queue
