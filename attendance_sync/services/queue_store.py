"""Durable queue store: the whole queue as one JSON file, replaced atomically."""
import asyncio
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal, Optional, TypeVar

from attendance_sync.errors import StorageCorruptError
from attendance_sync.models.queue import OfflineSyncQueue, decode_queue, encode_queue

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueueStore:
    """Persists the offline queue under a fixed storage key.

    ``load``/``save`` operate on the full queue. ``update`` serializes
    read-modify-write cycles so an enqueue landing during a drain is not
    overwritten by the drain's save.
    """

    def __init__(
        self,
        storage_dir: Path | str,
        key: str,
        *,
        corrupt_policy: Literal["reset", "fail"] = "reset",
    ):
        self.storage_dir = Path(storage_dir)
        self.key = key
        self.corrupt_policy = corrupt_policy
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self.storage_dir / f"{self.key}.json"

    async def load(self) -> OfflineSyncQueue:
        """Return the persisted queue, or an empty one if nothing was saved yet.

        Raises StorageCorruptError when the stored blob cannot be decoded.
        """
        raw = await asyncio.to_thread(self._read)
        if raw is None:
            return OfflineSyncQueue()
        return decode_queue(raw)

    async def save(self, queue: OfflineSyncQueue) -> None:
        await asyncio.to_thread(self._write, encode_queue(queue))

    async def load_for_use(self) -> OfflineSyncQueue:
        """``load`` with the configured corrupt-queue policy applied."""
        try:
            return await self.load()
        except StorageCorruptError:
            if self.corrupt_policy == "fail":
                raise
            moved = await asyncio.to_thread(self._quarantine)
            logger.warning(
                f"Offline queue at {self.path} is unreadable; moved to {moved} and starting empty"
            )
            return OfflineSyncQueue()

    async def update(
        self, mutate: Callable[[OfflineSyncQueue], T]
    ) -> tuple[OfflineSyncQueue, T]:
        """Load, apply ``mutate`` in place and save, as one serialized step."""
        async with self._lock:
            queue = await self.load_for_use()
            result = mutate(queue)
            await self.save(queue)
            return queue, result

    async def inspect(self, read: Callable[[OfflineSyncQueue], T]) -> T:
        """Run ``read`` against the persisted queue without saving.

        Holds the same lock as ``update``, so nothing mutates the queue while
        ``read`` runs.
        """
        async with self._lock:
            return read(await self.load_for_use())

    def _read(self) -> Optional[bytes]:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    def _write(self, data: bytes) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.key}.", suffix=".tmp", dir=self.storage_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise

    def _quarantine(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.storage_dir / f"{self.key}.corrupt-{stamp}.json"
        os.replace(self.path, target)
        return target
