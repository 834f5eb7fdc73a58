from .auth import User, UserSession, ROLES
from .catalog import Category, Product
from .customers import Customer
from .inventory import InventoryMovement
from .sales import Sale, SaleItem

__all__ = [
    'User', 'UserSession', 'ROLES',
    'Category', 'Product',
    'Customer',
    'InventoryMovement',
    'Sale', 'SaleItem',
]
