"""
Returnable container lifecycle.

- insert_outstanding: record a container that left under a deposit
- return_container: pending -> returned, empty stock grows, refund computed
- refill_containers: empties sent for refilling come back as full stock
"""

from __future__ import annotations

import uuid

from ..extensions import db
from ..models import OutstandingContainer, Product, Sale, SaleItem
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry
from .stock_log_service import append_stock_log

OUTSTANDING_STATUSES = {"pending", "returned"}


def insert_outstanding(payload: dict) -> tuple[dict, bool]:
    """
    Record an outstanding container. Idempotent by id.

    Returns (record dict, created flag).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for field in ("sale_id", "sale_item_id", "product_id", "quantity"):
        if payload.get(field) in (None, ""):
            raise ValidationError(f"Missing required field: {field}")

    try:
        quantity = int(payload["quantity"])
        deposit_amount = float(payload.get("deposit_amount") or 0)
    except (TypeError, ValueError):
        raise ValidationError("quantity and deposit_amount must be numbers")
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    if deposit_amount < 0:
        raise ValidationError("deposit_amount must be >= 0")

    record_id = payload.get("id") or f"oc-{uuid.uuid4().hex}"

    def _op():
        existing = db.session.get(OutstandingContainer, record_id)
        if existing is not None:
            return existing.to_dict(), False

        if db.session.get(Sale, payload["sale_id"]) is None:
            raise NotFoundError(f"Sale {payload['sale_id']} not found")
        item = db.session.get(SaleItem, payload["sale_item_id"])
        if item is None or item.sale_id != payload["sale_id"]:
            raise NotFoundError(f"Sale item {payload['sale_item_id']} not found")

        record = OutstandingContainer(
            id=record_id,
            sale_id=payload["sale_id"],
            sale_item_id=payload["sale_item_id"],
            product_id=payload["product_id"],
            customer_id=payload.get("customer_id"),
            quantity=quantity,
            deposit_amount=deposit_amount,
            status="pending",
        )
        db.session.add(record)
        db.session.commit()
        return record.to_dict(), True

    return run_with_retry(_op)


def list_outstanding(status: str | None = "pending", customer_id: str | None = None) -> list[dict]:
    query = db.session.query(OutstandingContainer)
    if status:
        if status not in OUTSTANDING_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(sorted(OUTSTANDING_STATUSES))}")
        query = query.filter(OutstandingContainer.status == status)
    if customer_id:
        query = query.filter(OutstandingContainer.customer_id == customer_id)
    rows = query.order_by(OutstandingContainer.created_at.asc(), OutstandingContainer.id.asc()).all()
    return [row.to_dict() for row in rows]


def return_container(outstanding_id: str, user_id: str | None = None, note: str | None = None) -> dict:
    """
    Close an outstanding container and refund its deposit.

    Returns the updated record; its refund_amount is what the cashier pays out.
    """
    def _op():
        record = lock_for_update(
            db.session.query(OutstandingContainer).filter_by(id=outstanding_id)
        ).first()
        if record is None:
            raise NotFoundError(f"Outstanding container {outstanding_id} not found")
        if record.status == "returned":
            raise ConflictError("Container already returned")

        product = lock_for_update(db.session.query(Product).filter_by(id=record.product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {record.product_id} not found")

        record.status = "returned"
        record.returned_at = utcnow()
        record.returned_by_user_id = user_id
        product.empty_stock = (product.empty_stock or 0) + record.quantity

        append_stock_log(
            product_id=product.id,
            change_amount=0,
            reason="deposit_return",
            note=note or f"Returned {record.quantity} container(s), refund {record.refund_amount:g}",
            user_id=user_id,
            sale_id=record.sale_id,
        )

        db.session.commit()
        return record.to_dict()

    return run_with_retry(_op)


def refill_containers(product_id: str, quantity: int, user_id: str | None = None, note: str | None = None) -> dict:
    """Convert empty containers into full stock."""
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer")
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        empty = product.empty_stock or 0
        if empty < quantity:
            raise ConflictError(f"Not enough empty containers (have {empty})")

        product.empty_stock = empty - quantity
        product.stock = (product.stock or 0) + quantity

        append_stock_log(
            product_id=product.id,
            change_amount=quantity,
            reason="refill",
            note=note or f"Refilled {quantity} container(s)",
            user_id=user_id,
        )

        db.session.commit()
        return product.to_dict()

    return run_with_retry(_op)
