from .auth import User, SessionToken, ROLES
from .orders import Order, OrderItem, ORDER_STATUSES, DELIVERY_STATUSES
from .inventory import StockUnit, StockMovement, STOCK_UNIT_STATUSES, MOVEMENT_TYPES
from .audit import AuditEntry
from .documents import DocumentSequence

__all__ = [
    'User', 'SessionToken', 'ROLES',
    'Order', 'OrderItem', 'ORDER_STATUSES', 'DELIVERY_STATUSES',
    'StockUnit', 'StockMovement', 'STOCK_UNIT_STATUSES', 'MOVEMENT_TYPES',
    'AuditEntry',
    'DocumentSequence',
]
