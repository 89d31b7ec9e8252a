from .catalog import Category, Subcategory, Product
from .inventory import InventoryLot
from .shifts import Shift
from .sales import Receipt, SaleLine, SaleLineAllocation
from .audit import AuditEvent

__all__ = [
    'Category', 'Subcategory', 'Product',
    'InventoryLot',
    'Shift',
    'Receipt', 'SaleLine', 'SaleLineAllocation',
    'AuditEvent',
]
