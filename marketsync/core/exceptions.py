class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class MarketplaceClientError(BaseServiceError):
    """Raised when a marketplace API call fails (timeout, 5xx, bad payload)."""
    pass

class TrendyolAPIError(MarketplaceClientError):
    """Raised when Trendyol API calls fail."""
    pass

class MarketplaceNotFoundError(BaseServiceError):
    """Raised when a marketplace is not configured."""
    pass

class StockLedgerError(BaseServiceError):
    """Base exception for stock ledger errors."""
    pass

class ProductNotFoundError(StockLedgerError):
    """Raised when product is not found."""
    pass

class OrderNotFoundError(BaseServiceError):
    """Raised when an order is not found."""
    pass

class OrderAlreadyExistsError(BaseServiceError):
    """Raised when an order with the same marketplace order id was created first."""

    def __init__(self, marketplace_order_id: str):
        super().__init__(f"Order {marketplace_order_id} already exists")
        self.marketplace_order_id = marketplace_order_id

class WebhookLogNotFoundError(BaseServiceError):
    """Raised when a webhook log entry is not found."""
    pass

class PayloadNormalizationError(BaseServiceError):
    """Raised when a marketplace payload cannot be normalized."""
    pass

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass
