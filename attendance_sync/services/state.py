"""Reactive offline state published to the presentation layer."""
import logging
from typing import Callable

from attendance_sync.models.sync import OfflineStatus

logger = logging.getLogger(__name__)


class OfflineState:
    def __init__(self, *, is_online: bool = True):
        self._status = OfflineStatus(is_online=is_online)
        self._subscribers: list[Callable[[OfflineStatus], None]] = []

    @property
    def is_online(self) -> bool:
        return self._status.is_online

    @property
    def is_syncing(self) -> bool:
        return self._status.is_syncing

    @property
    def queue_count(self) -> int:
        return self._status.queue_count

    @property
    def failed_count(self) -> int:
        return self._status.failed_count

    def snapshot(self) -> OfflineStatus:
        return self._status.model_copy()

    def subscribe(self, callback: Callable[[OfflineStatus], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def update(self, **changes) -> bool:
        """Apply changes; notify subscribers only if a value actually changed."""
        current = self._status.model_dump()
        merged = {**current, **changes}
        if merged == current:
            return False
        self._status = OfflineStatus(**merged)
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Offline state subscriber failed: {e}")
        return True
