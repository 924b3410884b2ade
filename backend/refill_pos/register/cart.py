"""
The register's cart.

Lines are keyed by (product id, sale mode): the same gas product sold once as
an exchange and once with a deposit occupies two lines. A line never holds a
quantity below 1; setting it to 0 removes the line.

The cart is local and synchronous. on_change is called after every mutation
so the owner can persist the contents.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from . import pricing
from .records import Product

_ANY = object()


class CartError(ValueError):
    """Invalid cart operation (unknown sale mode, mode on a plain product)."""


@dataclass
class CartLine:
    product: Product
    quantity: int = 1
    mode: Optional[str] = None

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return self.product.id, self.mode

    @property
    def subtotal(self) -> float:
        return pricing.line_subtotal(self)

    @property
    def deposit(self) -> float:
        return pricing.line_deposit(self)

    def to_dict(self) -> dict:
        return {"product": self.product.to_dict(), "quantity": self.quantity, "mode": self.mode}

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            product=Product.from_dict(data["product"]),
            quantity=int(data.get("quantity", 1)),
            mode=data.get("mode"),
        )


def _normalize_mode(product: Product, mode: Optional[str]) -> Optional[str]:
    if not product.has_deposit:
        return None
    if mode is None:
        return pricing.EXCHANGE
    if mode not in pricing.SALE_MODES:
        raise CartError(f"Unknown sale mode: {mode}")
    return mode


class Cart:
    def __init__(self, lines: list[CartLine] | None = None, on_change: Callable[["Cart"], None] | None = None):
        self._lines: list[CartLine] = list(lines or [])
        self._on_change = on_change

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def find(self, product_id: str, mode: Optional[str] = None) -> CartLine | None:
        for line in self._lines:
            if line.key == (product_id, mode):
                return line
        return None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def add(self, product: Product, mode: Optional[str] = None) -> CartLine:
        """Add one unit. Container products default to exchange."""
        mode = _normalize_mode(product, mode)
        line = self.find(product.id, mode)
        if line is not None:
            line.quantity += 1
            line.product = product
        else:
            line = CartLine(product=product, quantity=1, mode=mode)
            self._lines.append(line)
        self._changed()
        return line

    def remove(self, product_id: str, mode=_ANY) -> None:
        """Remove the (product, mode) line, or every line of the product when mode is omitted."""
        before = len(self._lines)
        self._lines = [
            line for line in self._lines
            if not (line.product.id == product_id and (mode is _ANY or line.mode == mode))
        ]
        if len(self._lines) != before:
            self._changed()

    def set_quantity(self, product_id: str, mode: Optional[str], quantity: int) -> None:
        quantity = int(quantity)
        if quantity <= 0:
            self.remove(product_id, mode)
            return
        line = self.find(product_id, mode)
        if line is None:
            return
        line.quantity = quantity
        self._changed()

    def set_mode(self, product_id: str, new_mode: str) -> None:
        """
        Switch every line of a container product to new_mode.

        Lines that end up with the same key are merged so the key stays unique.
        """
        if new_mode not in pricing.SALE_MODES:
            raise CartError(f"Unknown sale mode: {new_mode}")

        for line in self._lines:
            if line.product.id == product_id and not line.product.has_deposit:
                raise CartError(f"{line.product.name} is not sold with a container")

        merged: list[CartLine] = []
        target: CartLine | None = None
        touched = False
        for line in self._lines:
            if line.product.id != product_id:
                merged.append(line)
                continue
            touched = True
            if target is None:
                line.mode = new_mode
                target = line
                merged.append(line)
            else:
                target.quantity += line.quantity
        if touched:
            self._lines = merged
            self._changed()

    def rebind(self, lookup: Callable[[str], Product | None]) -> None:
        """Point lines at fresher product records (e.g. after a catalog refresh)."""
        changed = False
        for line in self._lines:
            fresh = lookup(line.product.id)
            if fresh is not None and fresh != line.product:
                line.product = fresh
                changed = True
        if changed:
            self._changed()

    def clear(self) -> None:
        if self._lines:
            self._lines = []
            self._changed()

    def total(self) -> float:
        return pricing.cart_total(self._lines)

    def deposit_total(self) -> float:
        return pricing.deposit_total(self._lines)

    def to_dict(self) -> dict:
        return {"lines": [line.to_dict() for line in self._lines]}

    @classmethod
    def from_dict(cls, data: dict | None, on_change: Callable[["Cart"], None] | None = None) -> "Cart":
        lines = [CartLine.from_dict(item) for item in (data or {}).get("lines", [])]
        return cls(lines=[line for line in lines if line.quantity >= 1], on_change=on_change)
