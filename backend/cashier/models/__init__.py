from .tenancy import Store, User
from .customers import Customer
from .catalog import Product
from .transactions import Transaction, TransactionItem, TransactionSequence

__all__ = [
    'Store', 'User',
    'Customer',
    'Product',
    'Transaction', 'TransactionItem', 'TransactionSequence',
]
