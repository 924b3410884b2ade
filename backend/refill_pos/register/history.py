"""Recent sales shown on the register, newest first."""

from __future__ import annotations

import threading
from typing import Callable

from refill_pos.time_utils import utcnow
from .records import Sale, SaleOrigin


class SaleHistory:
    def __init__(self, limit: int = 100):
        self.limit = limit
        self._sales: list[Sale] = []
        self._lock = threading.Lock()
        self._local_counter = 0

    @property
    def sales(self) -> list[Sale]:
        with self._lock:
            return list(self._sales)

    def __len__(self) -> int:
        return len(self._sales)

    def get(self, sale_id: str) -> Sale | None:
        with self._lock:
            return next((s for s in self._sales if s.id == sale_id), None)

    def next_local_number(self) -> int:
        with self._lock:
            self._local_counter += 1
            return self._local_counter

    def prepend(self, sale: Sale) -> None:
        with self._lock:
            self._sales = [sale] + [s for s in self._sales if s.id != sale.id]

    def mark_confirmed(self, sale_id: str) -> None:
        with self._lock:
            for sale in self._sales:
                if sale.id == sale_id:
                    sale.origin = SaleOrigin.CONFIRMED
                    sale.local_number = None

    def replace(self, confirmed: list[Sale], still_pending: Callable[[str], bool]) -> None:
        """
        Swap in a fresh remote listing.

        Placeholders whose queued sale has not been delivered yet are kept on
        top of the (limit-capped) remote listing.
        """
        with self._lock:
            remote_ids = {s.id for s in confirmed}
            pending = [
                s for s in self._sales
                if s.is_pending and s.id not in remote_ids and still_pending(s.id)
            ]
            merged = pending + list(confirmed)[: self.limit]
            merged.sort(key=lambda s: s.created_at, reverse=True)
            self._sales = merged

    def today_total(self) -> float:
        today = utcnow().date()
        return sum(s.total for s in self.sales if s.created_at.date() == today)
