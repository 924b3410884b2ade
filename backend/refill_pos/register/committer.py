"""
Sale commit state machine.

    Idle -> Validating -> Persisting -> SideEffects -> Settled
                 \\             \\             (logged only)
                  +-> Failed    +-> Failed

Validating   local payment checks; never retried.
Persisting   offline: the whole sale (header + items) becomes one queued
             "sale" operation and a pending placeholder goes to history.
             online: header, then items. A remote failure stops here, before
             any stock is touched.
SideEffects  per line, in cart order: stock decrement, empty-container
             increment (exchange) or outstanding record (deposit), stock log.
             The sale is already durable, so a failing step is logged and the
             rest carry on. A replay skips lines whose stock log exists.
Settled      history updated, cart cleared, notifications dispatched.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

from refill_pos.time_utils import to_utc_z, utcnow
from . import pricing
from .queue import SALE
from .records import Sale, SaleItem, SaleOrigin, new_id
from .remote import RemoteError

logger = logging.getLogger(__name__)

STOCK_LOG_REASONS = {
    None: "sale",
    pricing.EXCHANGE: "exchange",
    pricing.OUTRIGHT: "outright_sale",
    pricing.DEPOSIT: "deposit_sale",
}


class CommitState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    SIDE_EFFECTS = "side_effects"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass
class CommitResult:
    state: CommitState = CommitState.IDLE
    sale: Sale | None = None
    error: str | None = None
    trail: list[CommitState] = field(default_factory=lambda: [CommitState.IDLE])
    side_effect_errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is CommitState.SETTLED

    def advance(self, state: CommitState) -> None:
        self.state = state
        self.trail.append(state)

    def fail(self, message: str) -> "CommitResult":
        self.error = message
        self.advance(CommitState.FAILED)
        return self


def stock_log_id(item: SaleItem) -> str:
    return f"log-{item.id}"


def _stock_log_note(item: SaleItem, unit: str) -> str:
    if item.sale_mode == pricing.EXCHANGE:
        return f"Exchange {item.quantity} {unit}"
    if item.sale_mode == pricing.DEPOSIT:
        return f"Deposit sale {item.quantity} {unit}"
    if item.sale_mode == pricing.OUTRIGHT:
        return f"Outright sale {item.quantity} {unit}"
    return f"Sold {item.quantity} {unit}"


class SaleCommitter:
    def __init__(
        self,
        *,
        cart,
        catalog,
        gate,
        queue,
        remote,
        history,
        notifier,
        dispatcher,
        current_user: Callable[[], str | None] = lambda: None,
    ):
        self.cart = cart
        self.catalog = catalog
        self.gate = gate
        self.queue = queue
        self.remote = remote
        self.history = history
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.current_user = current_user

    def complete_sale(
        self,
        payment: float,
        *,
        customer_id: str | None = None,
        discount_amount: float = 0.0,
        payment_method: str = pricing.CASH,
        note: str | None = None,
    ) -> CommitResult:
        result = CommitResult()

        # Validating
        result.advance(CommitState.VALIDATING)
        if self.cart.is_empty:
            return result.fail("Cart is empty")
        if payment_method not in pricing.PAYMENT_METHODS:
            return result.fail(f"Unknown payment method: {payment_method}")
        if (discount_amount or 0) < 0:
            return result.fail("Discount cannot be negative")

        # Freeze prices from the catalog as it stands right now
        self.cart.rebind(self.catalog.get)
        lines = self.cart.lines
        if self.catalog.refreshed:
            for line in lines:
                if line.product.id not in self.catalog:
                    return result.fail(f"{line.product.name} is no longer in the catalog")
        total = pricing.sale_total(lines, discount_amount)
        settled = pricing.settle_payment(payment_method, payment, total)
        if settled is None:
            return result.fail(f"Payment {payment:g} is less than total {total:g}")
        paid, change = settled

        # Persisting
        result.advance(CommitState.PERSISTING)
        sale = self._build_sale(
            lines,
            total=total,
            payment=paid,
            change=change,
            payment_method=payment_method,
            discount_amount=discount_amount or 0.0,
            customer_id=customer_id,
            note=note,
        )

        if not self.gate.online:
            try:
                self.queue.enqueue(SALE, {
                    "sale": sale.header(),
                    "items": [item.to_dict() for item in sale.items],
                })
            except Exception as exc:
                logger.exception("Failed to queue offline sale %s", sale.id)
                return result.fail(f"Could not save sale for later sync: {exc}")
            sale.origin = SaleOrigin.PENDING_SYNC
            sale.local_number = self.history.next_local_number()
            self.history.prepend(sale)
            self.cart.clear()
            result.sale = sale
            result.advance(CommitState.SETTLED)
            logger.info("Sale %s queued offline (local #%d, total %s)", sale.id, sale.local_number, total)
            return result

        try:
            self.remote.sales.insert(sale.header())
            self.remote.sales.insert_items(sale.items)
        except RemoteError as exc:
            logger.exception("Failed to persist sale %s", sale.id)
            return result.fail(str(exc))

        # SideEffects
        result.advance(CommitState.SIDE_EFFECTS)
        result.side_effect_errors = self.apply_side_effects(sale)

        # Settled
        self.history.prepend(sale)
        self.cart.clear()
        result.sale = sale
        result.advance(CommitState.SETTLED)
        logger.info("Sale %s settled (total %s, change %s)", sale.id, sale.total, sale.change)

        self.dispatcher.submit(self.notifier.check_low_stock)
        self.dispatcher.submit(self.notifier.check_daily_target, self.history.today_total())
        return result

    def _build_sale(self, lines, **header) -> Sale:
        sale_id = new_id()
        items = []
        for position, line in enumerate(lines):
            price = pricing.unit_price(line.product, line.mode)
            items.append(SaleItem(
                id=new_id(),
                sale_id=sale_id,
                position=position,
                product_id=line.product.id,
                product_name=line.product.name,
                price=price,
                quantity=line.quantity,
                subtotal=price * line.quantity,
                sale_mode=line.mode,
                deposit_amount=pricing.unit_deposit(line.product, line.mode),
            ))
        return Sale(id=sale_id, items=items, user_id=self.current_user(), **header)

    def apply_side_effects(self, sale: Sale, items: list[SaleItem] | None = None) -> list[str]:
        """
        Run the per-line side effects of a sale the remote already holds.

        Outstanding records and stock logs take ids derived from the sale item,
        and the stock log is written last, so its presence marks the line as done.
        Returns the messages of the steps that failed.
        """
        errors: list[str] = []

        def step(description: str, fn: Callable[[], None]) -> None:
            try:
                fn()
            except Exception as exc:
                logger.exception("Side effect failed for sale %s: %s", sale.id, description)
                errors.append(f"{description}: {exc}")

        for item in sale.items if items is None else items:
            product = self.catalog.get(item.product_id)
            unit = product.unit if product is not None else "unit"

            new_stock = self.catalog.adjust_stock(item.product_id, -item.quantity)
            if new_stock is None:
                logger.warning("Product %s not in catalog; stock not decremented for sale %s", item.product_id, sale.id)
            else:
                step(
                    f"decrement stock of {item.product_id}",
                    lambda pid=item.product_id, s=new_stock: self.remote.products.update(pid, {"stock": s}),
                )

            if item.sale_mode == pricing.EXCHANGE:
                new_empty = self.catalog.adjust_empty_stock(item.product_id, item.quantity)
                if new_empty is not None:
                    step(
                        f"increment empty stock of {item.product_id}",
                        lambda pid=item.product_id, e=new_empty: self.remote.products.update(pid, {"empty_stock": e}),
                    )

            if item.sale_mode == pricing.DEPOSIT:
                record = {
                    "id": f"oc-{item.id}",
                    "sale_id": sale.id,
                    "sale_item_id": item.id,
                    "product_id": item.product_id,
                    "customer_id": sale.customer_id,
                    "quantity": item.quantity,
                    "deposit_amount": item.deposit_amount,
                    "status": "pending",
                }
                step(
                    f"record outstanding container for {item.product_id}",
                    lambda r=record: self.remote.containers.insert(r),
                )

            entry = {
                "id": stock_log_id(item),
                "product_id": item.product_id,
                "change_amount": -item.quantity,
                "reason": STOCK_LOG_REASONS[item.sale_mode],
                "note": _stock_log_note(item, unit),
                "user_id": sale.user_id,
                "sale_id": sale.id,
                "created_at": to_utc_z(utcnow()),
            }
            step(f"write stock log for {item.product_id}", lambda e=entry: self.remote.stock_logs.insert(e))

        return errors

    def replay(self, payload: dict) -> bool:
        """
        Deliver a sale queued while offline. Raises RemoteError on failure so
        the queue can retry.

        Header and items are upserted, then side effects run for the lines
        whose stock log the remote does not have yet. Returns False when every
        line was already applied (a duplicate replay).
        """
        sale = Sale.from_dict({**payload["sale"], "items": payload.get("items") or []})
        for item in sale.items:
            item.sale_id = sale.id

        existing = self.remote.sales.get(sale.id)
        if existing is None:
            self.remote.sales.insert(sale.header())
        if existing is None or len(existing.items) < len(sale.items):
            self.remote.sales.insert_items(sale.items)
        self.history.mark_confirmed(sale.id)

        pending = [item for item in sale.items if self.remote.stock_logs.get(stock_log_id(item)) is None]
        if not pending:
            logger.info("Sale %s already applied remotely; nothing to replay", sale.id)
            return False

        errors = self.apply_side_effects(sale, pending)
        if errors:
            logger.warning("Replayed sale %s with %d failed side effect(s)", sale.id, len(errors))
        return True
