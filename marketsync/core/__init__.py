"""
Core module exports.
"""
from .enums import (
    OrderStatus,
    StockLogType,
    WebhookStatus,
    WebhookEventType,
    NotificationType,
)

from .exceptions import (
    BaseServiceError,
    MarketplaceClientError,
    TrendyolAPIError,
    MarketplaceNotFoundError,
    StockLedgerError,
    ProductNotFoundError,
    OrderNotFoundError,
    OrderAlreadyExistsError,
    WebhookLogNotFoundError,
    PayloadNormalizationError,
    ValidationError,
)
