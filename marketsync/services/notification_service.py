"""Notification port for ingestion events."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import NotificationType
from marketsync.integrations.events import NotificationEvent
from marketsync.models.product import Product

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """
    Fire-and-forget sink for NotificationEvents.

    ``notify`` must never raise: a failing notification channel cannot be
    allowed to fail an ingestion that has already been committed.
    """

    async def notify(self, event: NotificationEvent) -> bool:
        try:
            return await self._send(event)
        except Exception as exc:
            logger.error("Notification %s failed: %s", event.type.value, exc, exc_info=True)
            return False

    async def notify_all(self, events: Iterable[NotificationEvent]) -> None:
        for event in events:
            await self.notify(event)

    @abstractmethod
    async def _send(self, event: NotificationEvent) -> bool:
        pass


class LoggingNotifier(Notifier):
    """Writes events to the application log."""

    async def _send(self, event: NotificationEvent) -> bool:
        level = logging.WARNING if event.type in (NotificationType.LOW_STOCK, NotificationType.UNMATCHED_PRODUCT) else logging.INFO
        logger.log(level, "[%s] %s: %s", event.type.value, event.title, event.message)
        return True


class WebhookNotifier(Notifier):
    """Posts events as JSON to a relay URL (chat bot, alerting hook)."""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def _send(self, event: NotificationEvent) -> bool:
        payload = {
            "type": event.type.value,
            "title": event.title,
            "message": event.message,
            "marketplace": event.marketplace,
            "data": event.data,
            "timestamp": event.timestamp.isoformat(),
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.url, json=payload)
        if response.status_code >= 400:
            logger.warning("Notification relay returned %s for %s", response.status_code, event.type.value)
            return False
        return True


class CompositeNotifier(Notifier):
    """Fans an event out to several notifiers concurrently."""

    def __init__(self, notifiers: Sequence[Notifier]):
        self.notifiers: List[Notifier] = list(notifiers)

    async def _send(self, event: NotificationEvent) -> bool:
        results = await asyncio.gather(*(notifier.notify(event) for notifier in self.notifiers))
        return all(results)


def build_notifier(settings: Optional[Settings] = None) -> Notifier:
    """Notifier for the configured channels; always includes the log."""
    settings = settings or get_settings()
    notifiers: List[Notifier] = [LoggingNotifier()]
    if settings.NOTIFICATION_WEBHOOK_URL:
        notifiers.append(WebhookNotifier(settings.NOTIFICATION_WEBHOOK_URL, timeout=settings.NOTIFICATION_TIMEOUT))
    if len(notifiers) == 1:
        return notifiers[0]
    return CompositeNotifier(notifiers)


def low_stock_event(product: Product, threshold: int) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.LOW_STOCK,
        title=f"Low stock: {product.name}",
        message=f"{product.sku} has {product.stock_quantity} left (threshold {threshold})",
        data={"product_id": product.id, "sku": product.sku, "stock_quantity": product.stock_quantity, "threshold": threshold},
    )


async def check_low_stock(
    db: AsyncSession,
    notifier: Optional[Notifier] = None,
    threshold: Optional[int] = None,
) -> List[Product]:
    """
    Products below ``threshold`` (placeholders excluded). Emits one LOW_STOCK
    event per product when a notifier is given.
    """
    if threshold is None:
        threshold = get_settings().LOW_STOCK_THRESHOLD

    result = await db.execute(
        select(Product)
        .where(Product.stock_quantity < threshold, Product.requires_review.is_(False))
        .order_by(Product.stock_quantity.asc(), Product.sku)
    )
    products = list(result.scalars().all())

    if notifier is not None:
        for product in products:
            await notifier.notify(low_stock_event(product, threshold))

    logger.info("Low stock check: %d products below %d", len(products), threshold)
    return products
