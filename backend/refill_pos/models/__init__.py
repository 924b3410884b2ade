from .catalog import Product, StockLog, OUTRIGHT_MARKUP
from .sales import Sale, SaleItem, OutstandingContainer

__all__ = [
    'Product', 'StockLog', 'OUTRIGHT_MARKUP',
    'Sale', 'SaleItem', 'OutstandingContainer',
]
