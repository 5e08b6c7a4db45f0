from .directory import User, UserRoleName, Warehouse, Product
from .access import AccessLevel, UserWarehouse
from .requests import Request, RequestItem, RequestHistory, RequestStatus
from .inventory import InventoryTransaction, TransactionType
from .audit import AuditLog
from .communications import Notification

__all__ = [
    'User', 'UserRoleName', 'Warehouse', 'Product',
    'AccessLevel', 'UserWarehouse',
    'Request', 'RequestItem', 'RequestHistory', 'RequestStatus',
    'InventoryTransaction', 'TransactionType',
    'AuditLog',
    'Notification',
]
