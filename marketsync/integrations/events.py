"""
Notification events emitted by the ingestion engine.

A NotificationEvent is handed to the configured Notifier whenever something an
operator may care about happens: a new order, a status change, a product
dropping below the low-stock threshold or an order line that could not be
matched to the catalog.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from marketsync.core.enums import NotificationType


class NotificationEvent(BaseModel):
    type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    marketplace: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
