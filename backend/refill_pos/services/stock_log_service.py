# Overview: Service-layer operations for the stock audit trail.

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import Product, StockLog
from ..validation import ValidationError, NotFoundError
"""
Stock Log Invariants

- Append-only: entries are never updated or deleted.
- Inserting an entry with an id that already exists is a no-op, so a register
  replaying the same audit entry does not duplicate it.
- created_at is business time supplied by the register when known.
"""

STOCK_LOG_REASONS = {
    "sale",
    "exchange",
    "outright_sale",
    "deposit_sale",
    "deposit_return",
    "refill",
    "adjustment",
}


def append_stock_log(
    *,
    product_id: str,
    change_amount: int,
    reason: str,
    note: Optional[str] = None,
    user_id: Optional[str] = None,
    sale_id: Optional[str] = None,
    log_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> StockLog:
    """
    Append one audit entry to the current session (no commit).
    """
    if reason not in STOCK_LOG_REASONS:
        raise ValidationError(f"Unknown stock log reason: {reason}")

    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    if log_id:
        existing = db.session.get(StockLog, log_id)
        if existing is not None:
            return existing

    entry = StockLog(
        id=log_id or f"log-{uuid.uuid4().hex}",
        product_id=product_id,
        change_amount=int(change_amount),
        reason=reason,
        note=note,
        user_id=user_id,
        sale_id=sale_id,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.session.add(entry)
    db.session.flush()
    return entry


def get_stock_log(log_id: str) -> StockLog:
    entry = db.session.get(StockLog, log_id)
    if entry is None:
        raise NotFoundError(f"Stock log {log_id} not found")
    return entry


def list_stock_logs(product_id: Optional[str] = None, limit: int = 100) -> list[dict]:
    query = db.session.query(StockLog)
    if product_id:
        query = query.filter(StockLog.product_id == product_id)
    rows = query.order_by(StockLog.created_at.desc(), StockLog.id.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]
