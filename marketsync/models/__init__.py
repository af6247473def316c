from .marketplace import Marketplace
from .product import Product
from .product_mapping import ProductMapping
from .order import Order, OrderItem
from .stock_log import StockLog
from .webhook import WebhookLog
from .activity_log import ActivityLog
from .counter import Counter

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Marketplace',
    'Product',
    'ProductMapping',
    'Order',
    'OrderItem',
    'StockLog',
    'WebhookLog',
    'ActivityLog',
    'Counter',
]
