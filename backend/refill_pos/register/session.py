"""
RegisterSession: one register's cart, catalog, sale history and offline queue.

Built once per register and passed to whoever needs it. All mutations
(checkout, catalog edits, each delivery step of a drain) are serialized
through the session lock; the drain's backoff sleeps happen outside it so the
register stays usable while the queue retries.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from refill_pos.config import RegisterConfig
from .cart import Cart
from .catalog import CatalogSnapshot
from .committer import CommitResult, CommitState, SaleCommitter
from .connectivity import ConnectivityGate
from .history import SaleHistory
from .notifications import Notifier, TaskDispatcher
from .queue import (
    DrainReport,
    OfflineQueue,
    PRODUCT_CREATE,
    PRODUCT_DELETE,
    PRODUCT_UPDATE,
    SALE,
)
from .records import Product, QueuedOperation, new_id
from .remote import HttpRemoteStore, RemoteError
from .storage import LocalStore

logger = logging.getLogger(__name__)


class RegisterSession:
    def __init__(
        self,
        *,
        remote,
        store: LocalStore | None = None,
        gate: ConnectivityGate | None = None,
        dispatcher=None,
        notifier: Notifier | None = None,
        deliver: Callable[[str, str, dict], None] | None = None,
        retry_delays: tuple[float, ...] = (1.0, 2.0, 4.0),
        sleep: Callable[[float], None] | None = None,
        sale_history_limit: int = 100,
        daily_target: float = 0.0,
        user_id: str | None = None,
    ):
        self.remote = remote
        self.store = store or LocalStore()
        self.gate = gate or ConnectivityGate()
        self.dispatcher = dispatcher or TaskDispatcher()
        self.user_id = user_id
        self.last_error: str | None = None
        self._lock = threading.RLock()

        self.catalog = CatalogSnapshot(remote)
        self.history = SaleHistory(limit=sale_history_limit)
        self.cart = Cart.from_dict(self.store.load_cart(), on_change=self._save_cart)

        queue_kwargs = {"retry_delays": retry_delays}
        if sleep is not None:
            queue_kwargs["sleep"] = sleep
        self.queue = OfflineQueue(self.store, **queue_kwargs)

        self.notifier = notifier or Notifier(self.catalog, daily_target=daily_target, deliver=deliver)
        self.committer = SaleCommitter(
            cart=self.cart,
            catalog=self.catalog,
            gate=self.gate,
            queue=self.queue,
            remote=remote,
            history=self.history,
            notifier=self.notifier,
            dispatcher=self.dispatcher,
            current_user=lambda: self.user_id,
        )

        self.gate.subscribe(self._on_connectivity_change)

    @classmethod
    def from_config(cls, config: RegisterConfig | None = None, **kwargs) -> "RegisterSession":
        config = config or RegisterConfig()
        return cls(
            remote=HttpRemoteStore(config.server_url, timeout=config.http_timeout),
            store=LocalStore(config.state_db),
            retry_delays=config.retry_delays,
            sale_history_limit=config.sale_history_limit,
            daily_target=config.daily_target,
            **kwargs,
        )

    # -- state ---------------------------------------------------------------

    @property
    def online(self) -> bool:
        return self.gate.online

    def set_online(self, online: bool) -> None:
        self.gate.set_online(online)

    @property
    def products(self) -> list[Product]:
        return self.catalog.products

    @property
    def sales(self):
        return self.history.sales

    def clear_error(self) -> None:
        self.last_error = None

    def _save_cart(self, cart: Cart) -> None:
        # The in-memory cart stays authoritative when the local store fails
        try:
            self.store.save_cart(cart.to_dict())
        except Exception:
            logger.exception("Failed to save cart locally")

    # -- checkout -------------------------------------------------------------

    def complete_sale(self, payment: float, **options) -> CommitResult:
        with self._lock:
            result = self.committer.complete_sale(payment, **options)
        # Validation failures are the cashier's to fix; remote failures are shown as errors
        if not result.ok and CommitState.PERSISTING in result.trail:
            self.last_error = result.error
        return result

    def cart_total(self) -> float:
        return self.cart.total()

    def deposit_total(self) -> float:
        return self.cart.deposit_total()

    # -- catalog --------------------------------------------------------------

    def refresh_catalog(self) -> bool:
        with self._lock:
            refreshed = self.catalog.refresh()
            if refreshed:
                self.cart.rebind(self.catalog.get)
            return refreshed

    def add_product(self, fields: dict) -> Product | None:
        data = dict(fields)
        data.setdefault("id", new_id(data.get("category") or "product"))
        product = Product.from_dict(data)

        with self._lock:
            if not self.online:
                self.queue.enqueue(PRODUCT_CREATE, product.to_dict())
                self.catalog.upsert(product)
                return product
            try:
                created = self.remote.products.insert(product)
            except RemoteError as exc:
                logger.exception("Failed to create product %s", product.id)
                self.last_error = str(exc)
                return None
            self.catalog.upsert(created)
            return created

    def update_product(self, product_id: str, updates: dict) -> bool:
        updates = {k: v for k, v in updates.items() if k != "id"}
        with self._lock:
            if not self.online:
                self.queue.enqueue(PRODUCT_UPDATE, {"id": product_id, "updates": updates})
                self.catalog.apply(product_id, updates)
                return True
            try:
                self.remote.products.update(product_id, updates)
            except RemoteError as exc:
                logger.exception("Failed to update product %s", product_id)
                self.last_error = str(exc)
                return False
            self.catalog.apply(product_id, updates)
            return True

    def delete_product(self, product_id: str) -> bool:
        """Soft delete: the product is deactivated remotely and leaves the snapshot."""
        with self._lock:
            if not self.online:
                self.queue.enqueue(PRODUCT_DELETE, {"id": product_id})
                self.catalog.discard(product_id)
                return True
            try:
                self.remote.products.set_active(product_id, False)
            except RemoteError as exc:
                logger.exception("Failed to delete product %s", product_id)
                self.last_error = str(exc)
                return False
            self.catalog.discard(product_id)
            return True

    def update_stock(self, product_id: str, delta: int) -> int | None:
        """
        Manual stock adjustment, clamped at zero.

        The snapshot changes first. Online, the absolute new value is written
        remotely; offline, the delta is queued and applied on top of whatever
        the remote holds when it is delivered. Returns the new stock, or None
        for unknown products.
        """
        with self._lock:
            if product_id not in self.catalog:
                return None
            if not self.online:
                self.queue.enqueue(PRODUCT_UPDATE, {"id": product_id, "stock_delta": int(delta)})
                return self.catalog.adjust_stock(product_id, delta)
            new_stock = self.catalog.adjust_stock(product_id, delta)
            try:
                self.remote.products.update(product_id, {"stock": new_stock})
            except RemoteError:
                logger.exception("Failed to update stock of %s", product_id)
            return new_stock

    # -- sales ----------------------------------------------------------------

    def fetch_sales(self, limit: int | None = None) -> bool:
        try:
            confirmed = self.remote.sales.list(limit or self.history.limit)
        except RemoteError as exc:
            logger.exception("Failed to fetch sales")
            self.last_error = str(exc)
            return False

        def still_queued(sale_id: str) -> bool:
            return self.queue.contains(SALE, lambda payload: payload["sale"]["id"] == sale_id)

        self.history.replace(confirmed, still_queued)
        return True

    def pending_sales(self):
        return [s for s in self.history.sales if s.is_pending]

    # -- offline queue ---------------------------------------------------------

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self.dispatcher.submit(self.sync)

    def _deliver(self, op: QueuedOperation) -> None:
        with self._lock:
            if op.type == SALE:
                self.committer.replay(op.payload)
            elif op.type == PRODUCT_CREATE:
                self.catalog.upsert(self.remote.products.insert(op.payload))
            elif op.type == PRODUCT_UPDATE and "stock_delta" in op.payload:
                self._deliver_stock_delta(op.payload["id"], op.payload["stock_delta"])
            elif op.type == PRODUCT_UPDATE:
                self.remote.products.update(op.payload["id"], op.payload["updates"])
                self.catalog.apply(op.payload["id"], op.payload["updates"])
            elif op.type == PRODUCT_DELETE:
                self.remote.products.set_active(op.payload["id"], False)
                self.catalog.discard(op.payload["id"])
            else:
                raise ValueError(f"Unknown operation type: {op.type}")

    def _deliver_stock_delta(self, product_id: str, delta: int) -> None:
        current = self.catalog.get(product_id)
        if current is None:
            logger.warning("Product %s no longer in catalog; dropping queued stock change %+d", product_id, delta)
            return
        new_stock = max(0, current.stock + delta)
        self.remote.products.update(product_id, {"stock": new_stock})
        self.catalog.apply(product_id, {"stock": new_stock})

    def sync(self) -> DrainReport:
        """
        Drain the offline queue, then reconcile caches with the remote.

        A sync started while another one runs returns a skipped report.
        """
        if not self.online:
            return DrainReport(skipped=True)
        if self.queue.is_draining:
            return DrainReport(skipped=True)

        # Delivery computes stock from the snapshot, so start from the remote's
        # values rather than from local edits that are themselves still queued
        if len(self.queue) and not self.refresh_catalog():
            failed = [op.id for op in self.queue.pending]
            self.last_error = f"Sync failed for {len(failed)} operation(s). Will retry later."
            logger.warning("Remote unreachable; %d queued operation(s) left for later", len(failed))
            return DrainReport(failed=failed)

        report = self.queue.drain(self._deliver)
        if report.skipped:
            return report

        self.refresh_catalog()
        self.fetch_sales()

        if report.sync_failed:
            self.last_error = f"Sync failed for {len(report.failed)} operation(s). Will retry later."

        if report.delivered_count > 0:
            logger.info("Synced %d queued operation(s)", report.delivered_count)
            self.dispatcher.submit(self.notifier.notify_sync_complete, self.user_id, report.delivered_count)
        return report

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)
        if hasattr(self.remote, "close"):
            self.remote.close()
        self.store.close()

