from .tenancy import Tenant, Store
from .catalog import Product
from .batches import ProductBatch
from .sales import Sale, SaleItem

__all__ = [
    'Tenant', 'Store',
    'Product',
    'ProductBatch',
    'Sale', 'SaleItem',
]
