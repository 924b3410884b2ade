# backend/refill_pos/services/products_service.py
"""
Products Service

All writes are idempotent by product id so a register can replay queued
catalog mutations safely:
- upsert_product inserts or overwrites
- update_product applies a partial patch (last write wins per field)
- set_product_active flips the soft-delete flag; repeating it is a no-op
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    validate_payload,
    enforce_rules_product,
)
from .concurrency import run_with_retry

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "unit",
    "barcode",
    "price",
    "stock",
    "empty_stock",
    "low_stock_threshold",
    "deposit_amount",
    "outright_price",
    "is_active",
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS | {"id"},
    required_on_create={"id", "name", "price"},
)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(active_only: bool = True) -> list[dict]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    products = query.order_by(Product.category.asc(), Product.name.asc(), Product.id.asc()).all()
    return [p.to_dict() for p in products]


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def upsert_product(payload: dict) -> tuple[dict, bool]:
    """
    Insert a product, or overwrite the writable fields of an existing one.

    Returns (product dict, created flag).
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False, ignore_unknown=True)
    enforce_rules_product(patch)

    def _op():
        product = db.session.get(Product, patch["id"])
        created = product is None
        if created:
            product = Product(id=patch["id"])
            db.session.add(product)
        apply_product_patch(product, patch)
        db.session.commit()
        return product.to_dict(), created

    return run_with_retry(_op)


def update_product(product_id: str, payload: dict) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True, ignore_unknown=True)
    patch.pop("id", None)
    enforce_rules_product(patch)

    def _op():
        product = get_product(product_id)
        apply_product_patch(product, patch)
        db.session.commit()
        return product.to_dict()

    return run_with_retry(_op)


def set_product_active(product_id: str, is_active: bool) -> dict:
    """Soft delete / restore. Setting the flag to its current value changes nothing."""
    def _op():
        product = get_product(product_id)
        if product.is_active != bool(is_active):
            product.is_active = bool(is_active)
            db.session.commit()
        return product.to_dict()

    return run_with_retry(_op)
