"""
In-memory mirror of the active product catalog.

Stock math during a sale reads and writes this snapshot synchronously, so two
sales committed back to back see each other's decrements before the next
refresh lands.
"""

from __future__ import annotations

import logging
import threading

from .records import Product
from .remote import RemoteError

logger = logging.getLogger(__name__)


class CatalogSnapshot:
    def __init__(self, remote=None, products: list[Product] | None = None):
        self._remote = remote
        self._products: dict[str, Product] = {p.id: p for p in products or []}
        self._lock = threading.RLock()
        self.refreshed = False

    @property
    def products(self) -> list[Product]:
        with self._lock:
            return list(self._products.values())

    def get(self, product_id: str) -> Product | None:
        with self._lock:
            return self._products.get(product_id)

    def __contains__(self, product_id: str) -> bool:
        return self.get(product_id) is not None

    def __len__(self) -> int:
        return len(self._products)

    def refresh(self) -> bool:
        """
        Replace the snapshot with the remote's active products.

        On failure the previous snapshot is kept and False is returned.
        """
        if self._remote is None:
            return False
        try:
            products = self._remote.products.list(active_only=True)
        except RemoteError:
            logger.exception("Catalog refresh failed; keeping previous snapshot")
            return False

        with self._lock:
            self._products = {p.id: p for p in products}
            self.refreshed = True
        logger.debug("Catalog refreshed with %d products", len(products))
        return True

    def upsert(self, product: Product) -> None:
        with self._lock:
            self._products[product.id] = product

    def discard(self, product_id: str) -> None:
        with self._lock:
            self._products.pop(product_id, None)

    def apply(self, product_id: str, updates: dict) -> Product | None:
        """Merge field updates into a product record; unknown products are ignored."""
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                return None
            merged = Product.from_dict({**current.to_dict(), **updates, "id": product_id})
            self._products[product_id] = merged
            return merged

    def adjust_stock(self, product_id: str, delta: int) -> int | None:
        """Add delta to full stock, clamped at zero. Returns the new stock or None."""
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                return None
            new_stock = max(0, current.stock + delta)
            self.apply(product_id, {"stock": new_stock})
            return new_stock

    def adjust_empty_stock(self, product_id: str, delta: int) -> int | None:
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                return None
            new_empty = max(0, (current.empty_stock or 0) + delta)
            self.apply(product_id, {"empty_stock": new_empty})
            return new_empty

    def low_stock(self) -> list[Product]:
        return [p for p in self.products if p.is_low_stock]
