from .inventory import Department, Product, StockTransaction, OpnameRecord
from .auth import User, SessionToken

__all__ = [
    'Department', 'Product', 'StockTransaction', 'OpnameRecord',
    'User', 'SessionToken',
]
