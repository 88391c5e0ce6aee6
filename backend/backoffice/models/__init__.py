from .tenancy import Tenant, Location, User
from .inventory import Product, InventoryBalance, InventoryTransaction
from .documents import (
    Adjustment, AdjustmentLine, Transfer, TransferLine, StockCount, StockCountItem, DocumentSequence,
)
from .orders import Order, OrderItem, Return, ReturnItem, Payment
from .purchasing import PurchaseOrder, PurchaseOrderItem

__all__ = [
    'Tenant', 'Location', 'User',
    'Product', 'InventoryBalance', 'InventoryTransaction',
    'Adjustment', 'AdjustmentLine', 'Transfer', 'TransferLine',
    'StockCount', 'StockCountItem', 'DocumentSequence',
    'Order', 'OrderItem', 'Return', 'ReturnItem', 'Payment',
    'PurchaseOrder', 'PurchaseOrderItem',
]
