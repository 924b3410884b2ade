from __future__ import annotations

from ..extensions import db
from refill_pos.time_utils import to_utc_z, utcnow
from refill_pos.register.pricing import OUTRIGHT_MARKUP


class Product(db.Model):
    """
    Product master data.

    ID DESIGN DECISION:
    Product ids are generated by the register (e.g. "gas-3f1c...") so a product
    created while offline keeps the same id when it is replayed. Inserts are
    upserts keyed on that id.

    CONTAINER PRODUCTS:
    A product with deposit_amount > 0 is sold in a returnable container.
    - stock counts full units on hand
    - empty_stock counts empty containers collected through exchanges
    - outright_price is optional; see effective_outright_price()

    Products are never physically deleted (sale history references them);
    is_active=False hides them from the catalog.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_category", "is_active", "category"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False, default="ice")
    unit = db.Column(db.String(32), nullable=False, default="unit")
    barcode = db.Column(db.String(64), nullable=True, index=True)

    price = db.Column(db.Float, nullable=False, default=0.0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    empty_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)

    deposit_amount = db.Column(db.Float, nullable=False, default=0.0)
    outright_price = db.Column(db.Float, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} stock={self.stock}>"

    @property
    def has_deposit(self) -> bool:
        return (self.deposit_amount or 0) > 0

    def effective_outright_price(self) -> float:
        if self.outright_price:
            return self.outright_price
        return (self.price or 0) + (self.deposit_amount or 0) + OUTRIGHT_MARKUP

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "barcode": self.barcode,
            "price": self.price,
            "stock": self.stock,
            "empty_stock": self.empty_stock,
            "low_stock_threshold": self.low_stock_threshold,
            "deposit_amount": self.deposit_amount,
            "outright_price": self.outright_price,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLog(db.Model):
    """
    Append-only stock audit trail.

    change_amount is the change to full stock (negative for sales). Empty
    container movements are recorded through the reason/note; a refill logs
    +quantity because full stock grows.
    """
    __tablename__ = "stock_logs"

    id = db.Column(db.String(64), primary_key=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    change_amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)
    note = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.String(64), nullable=True)
    sale_id = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "change_amount": self.change_amount,
            "reason": self.reason,
            "note": self.note,
            "user_id": self.user_id,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }
