"""
Pricing rules for cart lines.

Pure functions of product records and quantities; nothing here is stored.
Amounts are plain floats.

Sale modes apply only to container products (deposit_amount > 0):
- exchange: customer hands in an empty container, pays the unit price
- deposit:  unit price now, plus a refundable deposit collected separately
- outright: customer keeps the container and pays the outright price
"""

from __future__ import annotations

EXCHANGE = "exchange"
DEPOSIT = "deposit"
OUTRIGHT = "outright"
SALE_MODES = (EXCHANGE, DEPOSIT, OUTRIGHT)

CASH = "cash"
TRANSFER = "transfer"
CREDIT = "credit"
PAYMENT_METHODS = (CASH, TRANSFER, CREDIT)

# Added to price + deposit when a container product has no explicit outright price
OUTRIGHT_MARKUP = 500.0


def has_deposit(product) -> bool:
    return (product.deposit_amount or 0) > 0


def outright_price(product) -> float:
    if product.outright_price:
        return product.outright_price
    return product.price + (product.deposit_amount or 0) + OUTRIGHT_MARKUP


def unit_price(product, mode: str | None) -> float:
    if mode == OUTRIGHT:
        return outright_price(product)
    return product.price


def unit_deposit(product, mode: str | None) -> float:
    """Deposit charged per unit; only deposit-mode lines carry one."""
    if mode == DEPOSIT:
        return product.deposit_amount or 0
    return 0.0


def line_subtotal(line) -> float:
    return unit_price(line.product, line.mode) * line.quantity


def line_deposit(line) -> float:
    return unit_deposit(line.product, line.mode) * line.quantity


def cart_total(lines) -> float:
    """Sum of line subtotals. Deposits are not part of the total."""
    return sum((line_subtotal(line) for line in lines), 0.0)


def deposit_total(lines) -> float:
    return sum((line_deposit(line) for line in lines), 0.0)


def sale_total(lines, discount_amount: float = 0.0) -> float:
    return max(0.0, cart_total(lines) - (discount_amount or 0))


def settle_payment(method: str, tendered: float, total: float) -> tuple[float, float] | None:
    """
    Returns (payment, change) or None when the tender does not cover the total.

    Transfer and credit are always taken at exactly the total.
    """
    if method == CASH:
        if tendered < total:
            return None
        return tendered, tendered - total
    return total, 0.0
