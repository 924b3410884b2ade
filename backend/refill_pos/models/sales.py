from __future__ import annotations

from ..extensions import db
from refill_pos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Sale header. Immutable once written.

    WHY client ids: the register generates the UUID before it knows whether it
    is online, so a sale replayed from the offline queue lands under the same id
    and a duplicate replay finds the existing row instead of inserting twice.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    total = db.Column(db.Float, nullable=False, default=0.0)
    payment = db.Column(db.Float, nullable=False, default=0.0)
    change = db.Column(db.Float, nullable=False, default=0.0)
    discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    customer_id = db.Column(db.String(64), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    # Business time (set by the register, may predate receipt when replayed)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.position",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "total": self.total,
            "payment": self.payment,
            "change": self.change,
            "discount_amount": self.discount_amount,
            "payment_method": self.payment_method,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "received_at": to_utc_z(self.received_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Individual line of a sale, with name and prices frozen at sale time."""
    __tablename__ = "sale_items"

    id = db.Column(db.String(64), primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Float, nullable=False)

    # exchange / deposit / outright; NULL for plain products
    sale_mode = db.Column(db.String(16), nullable=True)
    # Per-unit deposit charged (0 unless sale_mode == "deposit")
    deposit_amount = db.Column(db.Float, nullable=False, default=0.0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "position": self.position,
            "product_name": self.product_name,
            "price": self.price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
            "sale_mode": self.sale_mode,
            "deposit_amount": self.deposit_amount,
        }


class OutstandingContainer(db.Model):
    """
    A container that left the shop under a deposit and is expected back.

    STATUS: pending -> returned. The refund owed on return is
    deposit_amount * quantity.
    """
    __tablename__ = "outstanding_containers"
    __table_args__ = (
        db.Index("ix_outstanding_status_customer", "status", "customer_id"),
    )

    id = db.Column(db.String(64), primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.String(64), db.ForeignKey("sale_items.id"), nullable=False)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    customer_id = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    deposit_amount = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(16), nullable=False, default="pending")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_by_user_id = db.Column(db.String(64), nullable=True)

    product = db.relationship("Product")

    @property
    def refund_amount(self) -> float:
        return (self.deposit_amount or 0) * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "quantity": self.quantity,
            "deposit_amount": self.deposit_amount,
            "status": self.status,
            "refund_amount": self.refund_amount,
            "created_at": to_utc_z(self.created_at),
            "returned_at": to_utc_z(self.returned_at),
            "returned_by_user_id": self.returned_by_user_id,
        }
