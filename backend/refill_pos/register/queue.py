"""
Offline mutation queue.

FIFO of QueuedOperations persisted after every change. drain() walks the queue
in enqueue order and gives each operation an immediate attempt plus up to
len(retry_delays) retries, sleeping retry_delays[n] before retry n+1. An
operation that runs out of retries stays queued (its retry counter persisted)
and the drain moves on to the next one, reporting sync_failed.

Delivery is at-least-once: the handler must be idempotent by id.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from refill_pos.time_utils import to_utc_z, utcnow
from .records import QueuedOperation, new_id

logger = logging.getLogger(__name__)

SALE = "sale"
PRODUCT_CREATE = "product_create"
PRODUCT_UPDATE = "product_update"
PRODUCT_DELETE = "product_delete"
OPERATION_TYPES = (SALE, PRODUCT_CREATE, PRODUCT_UPDATE, PRODUCT_DELETE)

DEFAULT_RETRY_DELAYS = (1.0, 2.0, 4.0)


@dataclass
class DrainReport:
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def sync_failed(self) -> bool:
        return bool(self.failed)

    @property
    def delivered_count(self) -> int:
        return len(self.delivered)


class OfflineQueue:
    def __init__(
        self,
        store=None,
        *,
        retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self.retry_delays = tuple(retry_delays)
        self._sleep = sleep
        self._lock = threading.RLock()
        self._draining = False
        self._ops: list[QueuedOperation] = []
        if store is not None:
            self._ops = [QueuedOperation.from_dict(op) for op in store.load_queue()]

    @property
    def max_retries(self) -> int:
        return len(self.retry_delays)

    @property
    def pending(self) -> list[QueuedOperation]:
        with self._lock:
            return list(self._ops)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def __len__(self) -> int:
        return len(self._ops)

    def contains(self, op_type: str, predicate: Callable[[dict], bool]) -> bool:
        with self._lock:
            return any(op.type == op_type and predicate(op.payload) for op in self._ops)

    def _persist(self, ops: list[QueuedOperation] | None = None) -> None:
        if self._store is not None:
            self._store.save_queue([op.to_dict() for op in (self._ops if ops is None else ops)])

    def enqueue(self, op_type: str, payload: dict) -> QueuedOperation:
        if op_type not in OPERATION_TYPES:
            raise ValueError(f"Unknown operation type: {op_type}")
        op = QueuedOperation(
            id=new_id("op"),
            type=op_type,
            payload=payload,
            enqueued_at=to_utc_z(utcnow()),
        )
        with self._lock:
            # Only a stored operation counts as queued
            ops = self._ops + [op]
            self._persist(ops)
            self._ops = ops
        logger.info("Queued %s operation %s (%d pending)", op_type, op.id, len(self._ops))
        return op

    def _set_retries(self, op: QueuedOperation, retries: int) -> None:
        with self._lock:
            op.retries = retries
            self._persist()

    def _remove(self, op: QueuedOperation) -> None:
        with self._lock:
            self._ops = [o for o in self._ops if o.id != op.id]
            self._persist()

    def _attempt(self, op: QueuedOperation, handler: Callable[[QueuedOperation], None]) -> bool:
        try:
            handler(op)
            return True
        except Exception:
            logger.exception("Failed to process %s operation %s", op.type, op.id)
            return False

    def _deliver(self, op: QueuedOperation, handler: Callable[[QueuedOperation], None]) -> bool:
        if self._attempt(op, handler):
            return True

        retries = op.retries
        while retries < self.max_retries:
            delay = self.retry_delays[retries]
            logger.info("Retry %d/%d for operation %s after %ss", retries + 1, self.max_retries, op.id, delay)
            self._sleep(delay)
            retries += 1
            self._set_retries(op, retries)
            if self._attempt(op, handler):
                return True
        return False

    def drain(self, handler: Callable[[QueuedOperation], None]) -> DrainReport:
        """
        Deliver every queued operation through handler, in enqueue order.

        A call made while another drain is running returns a skipped report.
        Operations enqueued during the drain wait for the next one.
        """
        with self._lock:
            if self._draining:
                return DrainReport(skipped=True)
            self._draining = True
            batch = list(self._ops)

        report = DrainReport()
        try:
            for op in batch:
                if self._deliver(op, handler):
                    self._remove(op)
                    report.delivered.append(op.id)
                else:
                    logger.error("Operation %s failed after %d retries; kept for a later sync", op.id, self.max_retries)
                    report.failed.append(op.id)
        finally:
            with self._lock:
                self._draining = False

        return report
