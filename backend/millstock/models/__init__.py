from .catalog import Supplier, Product, StorageLocation, PriceHistory
from .inventory import InventoryItem, InventoryTransaction
from .purchasing import PurchaseOrder, PurchaseOrderItem, Backorder, PurchaseReturn, PurchaseReturnItem
from .sales import Order, OrderItem, Delivery, DeliveryItem
from .finance import FinanceAccount, FinanceTransaction

__all__ = [
    'Supplier', 'Product', 'StorageLocation', 'PriceHistory',
    'InventoryItem', 'InventoryTransaction',
    'PurchaseOrder', 'PurchaseOrderItem', 'Backorder', 'PurchaseReturn', 'PurchaseReturnItem',
    'Order', 'OrderItem', 'Delivery', 'DeliveryItem',
    'FinanceAccount', 'FinanceTransaction',
]
