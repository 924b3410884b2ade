"""
Plain records the register works with.

These mirror the remote store's JSON shapes (see refill_pos.models); from_dict
ignores keys it does not know so the server can grow fields freely.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Optional

from refill_pos.time_utils import parse_iso_datetime, to_utc_z, utcnow
from . import pricing


def new_id(prefix: str | None = None) -> str:
    if prefix:
        return f"{prefix}-{uuid.uuid4().hex}"
    return str(uuid.uuid4())


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class Product:
    id: str
    name: str
    price: float
    unit: str = "unit"
    category: str = "ice"
    stock: int = 0
    empty_stock: int = 0
    low_stock_threshold: int = 0
    deposit_amount: float = 0.0
    outright_price: Optional[float] = None
    barcode: Optional[str] = None
    is_active: bool = True

    @property
    def has_deposit(self) -> bool:
        return pricing.has_deposit(self)

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_threshold

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        values = _known(cls, data)
        for key in ("stock", "empty_stock", "low_stock_threshold"):
            if values.get(key) is None:
                values.pop(key, None)
        if values.get("deposit_amount") is None:
            values.pop("deposit_amount", None)
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SaleItem:
    id: str
    product_id: str
    product_name: str
    price: float
    quantity: int
    subtotal: float
    sale_mode: Optional[str] = None
    deposit_amount: float = 0.0
    sale_id: Optional[str] = None
    position: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "SaleItem":
        return cls(**_known(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


class SaleOrigin(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING_SYNC = "pending_sync"


@dataclass
class Sale:
    id: str
    items: list[SaleItem]
    total: float
    payment: float
    change: float
    payment_method: str = pricing.CASH
    discount_amount: float = 0.0
    customer_id: Optional[str] = None
    user_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    origin: SaleOrigin = SaleOrigin.CONFIRMED
    # Sequence shown on receipts for sales still waiting in the offline queue
    local_number: Optional[int] = None

    @property
    def is_pending(self) -> bool:
        return self.origin is SaleOrigin.PENDING_SYNC

    def header(self) -> dict:
        """The sale row as the remote store expects it (no items)."""
        return {
            "id": self.id,
            "total": self.total,
            "payment": self.payment,
            "change": self.change,
            "payment_method": self.payment_method,
            "discount_amount": self.discount_amount,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict, origin: SaleOrigin = SaleOrigin.CONFIRMED) -> "Sale":
        values = _known(cls, data)
        values["items"] = [SaleItem.from_dict(item) for item in data.get("items") or []]
        created = data.get("created_at")
        values["created_at"] = parse_iso_datetime(created) if isinstance(created, str) else (created or utcnow())
        values["origin"] = SaleOrigin(data.get("origin", origin))
        for key in ("discount_amount",):
            if values.get(key) is None:
                values.pop(key, None)
        return cls(**values)

    def to_dict(self) -> dict:
        data = self.header()
        data["items"] = [item.to_dict() for item in self.items]
        data["origin"] = self.origin.value
        data["local_number"] = self.local_number
        return data


@dataclass
class QueuedOperation:
    id: str
    type: str
    payload: dict[str, Any]
    enqueued_at: str
    retries: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "QueuedOperation":
        return cls(**_known(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)
