"""
Sales Service - header and items are written separately but keyed by
register-generated ids.

WHY: A register that loses connectivity queues the whole sale and replays it
later, possibly more than once. Inserting a header whose id already exists
returns the stored row; items are upserted by their own ids. Replays are
therefore harmless.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
    enforce_rules_sale,
    enforce_rules_sale_item,
)
from .concurrency import run_with_retry

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "id", "total", "payment", "change", "discount_amount", "payment_method",
        "customer_id", "user_id", "note", "created_at",
    },
    required_on_create={"id", "total", "payment"},
)

SALE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "id", "product_id", "position", "product_name", "price", "quantity",
        "subtotal", "sale_mode", "deposit_amount",
    },
    required_on_create={"id", "product_id", "product_name", "price", "quantity", "subtotal"},
)


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def insert_sale(payload: dict) -> tuple[dict, bool]:
    """
    Insert a sale header. Returns (sale dict, created flag).

    An existing id is returned untouched: sales are immutable.
    """
    header = validate_payload(model=Sale, payload=payload, policy=SALE_POLICY, partial=False, ignore_unknown=True)
    enforce_rules_sale(header)

    def _op():
        existing = db.session.get(Sale, header["id"])
        if existing is not None:
            return existing.to_dict(), False

        sale = Sale(**header)
        db.session.add(sale)
        db.session.commit()
        return sale.to_dict(), True

    return run_with_retry(_op)


def insert_items(sale_id: str, items: list[dict]) -> list[dict]:
    """
    Upsert the items of a sale by item id.

    The header must already exist. Item sale_id is always forced to the
    header id from the URL, whatever the payload says.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cleaned = []
    for position, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        raw = {"position": position, **raw}
        item = validate_payload(model=SaleItem, payload=raw, policy=SALE_ITEM_POLICY, partial=False, ignore_unknown=True)
        enforce_rules_sale_item(item)
        cleaned.append(item)

    def _op():
        sale = db.session.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found")

        missing = sorted({
            item["product_id"] for item in cleaned
            if db.session.get(Product, item["product_id"]) is None
        })
        if missing:
            raise SaleError("Unknown products on sale items", details={"product_ids": missing})

        for item in cleaned:
            row = db.session.get(SaleItem, item["id"])
            if row is None:
                row = SaleItem(id=item["id"], sale_id=sale_id)
                db.session.add(row)
            elif row.sale_id != sale_id:
                raise SaleError("Sale item belongs to another sale", details={"item_id": item["id"]})
            for key, value in item.items():
                if key != "id":
                    setattr(row, key, value)

        db.session.commit()
        return [row.to_dict() for row in sale.items]

    return run_with_retry(_op)


def get_sale(sale_id: str) -> dict:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale.to_dict()


def list_sales(limit: int = 100, since: str | None = None) -> list[dict]:
    """Newest first, joined with items."""
    query = db.session.query(Sale)
    if since:
        try:
            since_dt = parse_iso_datetime(since)
        except ValueError:
            raise ValidationError("since must be an ISO-8601 datetime")
        query = query.filter(Sale.created_at >= since_dt)
    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    return [sale.to_dict() for sale in sales]
