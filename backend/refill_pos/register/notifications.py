"""
Fire-and-forget work after a sale or a sync.

Notifications must never block or fail a sale, so they go through a
dispatcher whose failures end up in the log and nowhere else.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from typing import Callable

from refill_pos.time_utils import utcnow

logger = logging.getLogger(__name__)


def _log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Background task failed", exc_info=(type(exc), exc, exc.__traceback__))


class TaskDispatcher:
    """Runs tasks on a small thread pool."""

    def __init__(self, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="register-task")

    def submit(self, fn: Callable, *args, **kwargs) -> Future | None:
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            # Pool already shut down (register closing)
            logger.warning("Dropped background task %s: dispatcher is shut down", getattr(fn, "__name__", fn))
            return None
        future.add_done_callback(_log_failure)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class InlineDispatcher:
    """Runs tasks immediately in the caller's thread; failures are still only logged."""

    def submit(self, fn: Callable, *args, **kwargs) -> None:
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("Background task failed")

    def shutdown(self, wait: bool = True) -> None:
        pass


def log_delivery(kind: str, message: str, data: dict) -> None:
    logger.info("[%s] %s %s", kind, message, data)


class Notifier:
    """
    Decides when to alert and hands the alert to deliver(kind, message, data).

    Push delivery lives outside the register; the default deliver just logs.
    """

    def __init__(self, catalog, daily_target: float = 0.0, deliver: Callable[[str, str, dict], None] | None = None):
        self._catalog = catalog
        self.daily_target = daily_target
        self._deliver = deliver or log_delivery
        self._target_notified_on: date | None = None

    def check_low_stock(self) -> int:
        products = self._catalog.low_stock()
        for product in products:
            self._deliver(
                "low_stock",
                f"{product.name} has {product.stock} {product.unit} left",
                {"product_id": product.id, "stock": product.stock},
            )
        return len(products)

    def check_daily_target(self, total: float) -> bool:
        """Alert once per day when today's sales reach the configured target."""
        if not self.daily_target or total < self.daily_target:
            return False
        today = utcnow().date()
        if self._target_notified_on == today:
            return False
        self._target_notified_on = today
        self._deliver("daily_target", f"Daily target reached: {total:g}", {"total": total})
        return True

    def notify_sync_complete(self, user_id: str | None, count: int) -> None:
        self._deliver(
            "sync_complete",
            f"Synced {count} offline operation(s)",
            {"user_id": user_id, "count": count},
        )
