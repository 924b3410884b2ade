import pytest

from refill_pos.register import LocalStore, OfflineQueue
from refill_pos.register.queue import PRODUCT_CREATE, PRODUCT_DELETE, PRODUCT_UPDATE, SALE


@pytest.fixture
def store():
    store = LocalStore()
    yield store
    store.close()


@pytest.fixture
def queue(store, sleeps):
    return OfflineQueue(store, retry_delays=(1.0, 2.0, 4.0), sleep=sleeps.append)


def _flaky(failures):
    """Handler failing `failures[op_id]` more times before succeeding; None fails forever."""
    seen = []

    def handler(op):
        seen.append(op.id)
        remaining = failures.get(op.id, 0)
        if remaining is None:
            raise RuntimeError("remote unavailable")
        if remaining > 0:
            failures[op.id] = remaining - 1
            raise RuntimeError("remote unavailable")

    handler.seen = seen
    return handler


def test_drain_delivers_in_enqueue_order(queue, store):
    ops = [
        queue.enqueue(PRODUCT_CREATE, {"id": "p1"}),
        queue.enqueue(PRODUCT_UPDATE, {"id": "p1", "updates": {"price": 5}}),
        queue.enqueue(PRODUCT_DELETE, {"id": "p1"}),
    ]
    handler = _flaky({})

    report = queue.drain(handler)

    assert handler.seen == [op.id for op in ops]
    assert report.delivered == [op.id for op in ops]
    assert not report.sync_failed
    assert len(queue) == 0
    assert store.load_queue() == []


def test_enqueue_that_cannot_be_stored_is_not_queued(store, monkeypatch):
    queue = OfflineQueue(store)
    queue.enqueue(PRODUCT_CREATE, {"id": "p1"})

    def disk_full(operations):
        raise OSError("disk full")

    monkeypatch.setattr(store, "save_queue", disk_full)

    with pytest.raises(OSError):
        queue.enqueue(PRODUCT_DELETE, {"id": "p1"})

    assert [op.type for op in queue.pending] == [PRODUCT_CREATE]


def test_unknown_operation_type_rejected(queue):
    with pytest.raises(ValueError):
        queue.enqueue("refund", {})


def test_retries_back_off_one_two_four(queue, sleeps):
    op = queue.enqueue(SALE, {"sale": {"id": "s1"}, "items": []})
    handler = _flaky({op.id: 2})

    report = queue.drain(handler)

    assert report.delivered == [op.id]
    assert sleeps == [1.0, 2.0]
    assert len(handler.seen) == 3


def test_exhausted_operation_is_kept_and_reported(queue, store, sleeps):
    op = queue.enqueue(SALE, {"sale": {"id": "s1"}, "items": []})
    handler = _flaky({op.id: None})

    report = queue.drain(handler)

    assert report.sync_failed
    assert report.failed == [op.id]
    assert sleeps == [1.0, 2.0, 4.0]
    # immediate attempt plus three retries
    assert len(handler.seen) == 4
    stored = store.load_queue()
    assert [row["id"] for row in stored] == [op.id]
    assert stored[0]["retries"] == 3


def test_failed_operation_does_not_block_the_rest(queue):
    stuck = queue.enqueue(PRODUCT_UPDATE, {"id": "gone", "updates": {}})
    fine = queue.enqueue(PRODUCT_CREATE, {"id": "p2"})
    handler = _flaky({stuck.id: None})

    report = queue.drain(handler)

    assert report.delivered == [fine.id]
    assert report.failed == [stuck.id]
    assert [op.id for op in queue.pending] == [stuck.id]


def test_kept_operation_is_delivered_by_a_later_drain(queue):
    op = queue.enqueue(SALE, {"sale": {"id": "s1"}, "items": []})
    queue.drain(_flaky({op.id: None}))

    report = queue.drain(_flaky({}))

    assert report.delivered == [op.id]
    assert len(queue) == 0


def test_reentrant_drain_is_a_noop(queue):
    op = queue.enqueue(PRODUCT_CREATE, {"id": "p1"})
    inner_reports = []

    def handler(queued):
        assert queue.is_draining
        inner_reports.append(queue.drain(lambda _: None))

    report = queue.drain(handler)

    assert report.delivered == [op.id]
    assert len(inner_reports) == 1
    assert inner_reports[0].skipped
    assert not queue.is_draining


def test_operation_enqueued_during_drain_waits_for_next_drain(queue):
    first = queue.enqueue(PRODUCT_CREATE, {"id": "p1"})
    late = []

    def handler(op):
        if not late:
            late.append(queue.enqueue(PRODUCT_CREATE, {"id": "p2"}))

    report = queue.drain(handler)

    assert report.delivered == [first.id]
    assert [op.id for op in queue.pending] == [late[0].id]


def test_queue_survives_restart(store, sleeps):
    queue = OfflineQueue(store, sleep=sleeps.append)
    ops = [
        queue.enqueue(SALE, {"sale": {"id": "s1", "total": 150}, "items": []}),
        queue.enqueue(PRODUCT_DELETE, {"id": "p9"}),
    ]

    reopened = OfflineQueue(store, sleep=sleeps.append)

    assert [op.id for op in reopened.pending] == [op.id for op in ops]
    assert reopened.pending[0].payload["sale"]["total"] == 150
    assert reopened.contains(SALE, lambda payload: payload["sale"]["id"] == "s1")
    assert not reopened.contains(SALE, lambda payload: payload["sale"]["id"] == "s2")


def test_queue_survives_restart_on_disk(tmp_path, sleeps):
    url = f"sqlite:///{tmp_path / 'register.sqlite3'}"
    store = LocalStore(url)
    OfflineQueue(store, sleep=sleeps.append).enqueue(PRODUCT_CREATE, {"id": "p1"})
    store.close()

    reopened = LocalStore(url)
    try:
        assert [op["type"] for op in reopened.load_queue()] == [PRODUCT_CREATE]
    finally:
        reopened.close()
