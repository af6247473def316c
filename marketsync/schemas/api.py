"""
Request and response schemas for the HTTP API.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from marketsync.core.enums import OrderStatus, StockLogType, WebhookStatus
from .base import BaseSchema, TimestampedSchema


class WebhookResponse(BaseModel):
    success: bool
    message: str
    error: Optional[str] = None


class SyncResponse(BaseModel):
    success: bool
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    errors: List[str] = Field(default_factory=list)


class WebhookLogRead(BaseSchema):
    id: int
    marketplace_id: int
    event_type: str
    payload: Any = None
    status: WebhookStatus
    message: Optional[str] = None
    error: Optional[str] = None
    retry_count: int = 0
    created_at: datetime
    processed_at: Optional[datetime] = None


class WebhookLogList(BaseModel):
    logs: List[WebhookLogRead]
    total: int
    page: int
    limit: int


class OrderItemRead(BaseSchema):
    id: int
    product_mapping_id: int
    quantity: int
    price: Optional[float] = None
    order_line_id: Optional[str] = None
    product_name: Optional[str] = None
    barcode: Optional[str] = None
    merchant_sku: Optional[str] = None


class OrderRead(TimestampedSchema):
    id: int
    marketplace_order_id: str
    marketplace_id: int
    status: OrderStatus
    shipment_package_status: Optional[str] = None
    total_amount: Optional[float] = None
    order_date: Optional[datetime] = None
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_email: Optional[str] = None
    cargo_provider_name: Optional[str] = None
    cargo_tracking_number: Optional[str] = None
    items: List[OrderItemRead] = Field(default_factory=list)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    user: Optional[str] = None


class OrderActionResponse(BaseModel):
    success: bool
    action: str
    message: str
    status: Optional[OrderStatus] = None
    stock_changes: int = 0


class StockLogRead(BaseSchema):
    id: int
    product_id: int
    order_id: Optional[int] = None
    type: StockLogType
    quantity: int
    requested_quantity: int
    old_stock: int
    new_stock: int
    reason: Optional[str] = None
    reference: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


class StockAdjustRequest(BaseModel):
    quantity: int
    type: StockLogType = StockLogType.ADJUSTMENT
    reason: Optional[str] = None
    user: Optional[str] = None


class LedgerAuditRead(BaseModel):
    product_id: int
    sku: str
    initial: int
    ledger_sum: int
    current: int
    expected: int
    consistent: bool


class ProductRead(BaseSchema):
    id: int
    sku: str
    name: str
    stock_quantity: int
    price: Optional[float] = None
    location: Optional[str] = None
    requires_review: bool = False
    created_at: datetime


class MappingLinkRequest(BaseModel):
    product_id: int
    sync_stock: bool = True


class MappingRead(BaseSchema):
    id: int
    product_id: int
    marketplace_id: int
    remote_sku: str
    remote_product_id: Optional[str] = None
    remote_product_name: Optional[str] = None
    sync_stock: bool


class SchedulerStatus(BaseModel):
    running: bool
    enabled: bool
    schedule: str
    jobs: List[Dict[str, Any]]
    available_jobs: List[str]
