"""
Shared enums and constants used across the application.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Canonical local order status every marketplace vocabulary maps into"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    @property
    def is_closed_for_refund(self) -> bool:
        # Stock for these orders has already gone back (or never will)
        return self in (OrderStatus.CANCELLED, OrderStatus.REFUNDED)


class StockLogType(str, Enum):
    SALE = "SALE"
    CANCEL = "CANCEL"
    RETURN = "RETURN"
    ENTRY = "ENTRY"
    EXIT = "EXIT"
    ADJUSTMENT = "ADJUSTMENT"


class WebhookStatus(str, Enum):
    """Processing status of a received webhook call"""
    PENDING = "PENDING"          # Logged, not yet picked up
    PROCESSING = "PROCESSING"    # Dispatch in progress
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"            # Exception during processing, replayable
    IGNORED = "IGNORED"          # Unknown event type


class WebhookEventType(str, Enum):
    ORDER_CREATED = "order.created"
    ORDER_NEW = "order.new"
    ORDER_UPDATED = "order.updated"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_CANCELLED = "order.cancelled"
    STOCK_UPDATED = "stock.updated"


class NotificationType(str, Enum):
    NEW_ORDER = "NEW_ORDER"
    ORDER_STATUS_CHANGE = "ORDER_STATUS_CHANGE"
    LOW_STOCK = "LOW_STOCK"
    UNMATCHED_PRODUCT = "UNMATCHED_PRODUCT"
