from datetime import timedelta

import pytest
from pydantic import ValidationError

from attendance_sync.models.attendance import AttendanceMarkData
from attendance_sync.models.queue import OfflineSyncQueue, QueueItem, QueueItemType
from attendance_sync.models.sync import NetworkState

from conftest import TODAY, days_ago, make_mark


def _item(item_id, age_days=0, **kw):
    return QueueItem(id=item_id, payload=make_mark(), timestamp=days_ago(age_days), **kw)


def test_new_item_defaults():
    item = _item("1-a")
    assert item.type is QueueItemType.ATTENDANCE_MARK
    assert item.synced is False
    assert item.retries == 0
    assert item.is_pending


def test_identity_payload_and_timestamp_are_frozen():
    item = _item("1-a")
    with pytest.raises(ValidationError):
        item.id = "other"
    with pytest.raises(ValidationError):
        item.payload = make_mark(student_id="stu-2")
    with pytest.raises(ValidationError):
        item.timestamp = days_ago(3)
    with pytest.raises(ValidationError):
        item.payload.status = "absent"

    item.synced = True
    item.retries = 4
    assert item.synced and item.retries == 4


def test_invalid_status_is_rejected():
    with pytest.raises(ValidationError):
        AttendanceMarkData(
            student_id="s", subject_id="sub", date=TODAY, status="sleeping", marked_by="f"
        )


def test_append_rejects_duplicate_ids():
    queue = OfflineSyncQueue()
    queue.append(_item("1-a"))
    with pytest.raises(ValueError):
        queue.append(_item("1-a"))


def test_pending_excludes_synced_and_failed_and_keeps_order():
    queue = OfflineSyncQueue()
    queue.append(_item("1-a"))
    queue.append(_item("2-b", synced=True))
    queue.append(_item("3-c", failed=True))
    queue.append(_item("4-d"))

    assert [i.id for i in queue.pending()] == ["1-a", "4-d"]
    assert queue.unsynced_count() == 3
    assert queue.failed_count() == 1


def test_prune_only_drops_old_synced_items():
    queue = OfflineSyncQueue()
    queue.append(_item("old-synced", age_days=31, synced=True))
    queue.append(_item("young-synced", age_days=29, synced=True))
    queue.append(_item("old-pending", age_days=45))

    removed = queue.prune(days_ago(0) - timedelta(days=30))

    assert removed == 1
    assert [i.id for i in queue.queue] == ["young-synced", "old-pending"]


def test_apply_copies_sync_state_by_id():
    queue = OfflineSyncQueue()
    queue.append(_item("1-a"))
    queue.append(_item("2-b"))
    updated = _item("2-b", synced=True, retries=2)
    ghost = _item("9-z", synced=True)

    assert queue.apply([updated, ghost]) == 1
    assert queue.queue[1].synced is True
    assert queue.queue[1].retries == 2
    assert queue.queue[0].synced is False


@pytest.mark.parametrize(
    "connected, reachable, online",
    [(True, True, True), (True, False, False), (True, None, False), (False, True, False)],
)
def test_network_state_requires_link_and_internet(connected, reachable, online):
    assert NetworkState(connected=connected, internet_reachable=reachable).is_online is online
