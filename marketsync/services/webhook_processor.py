"""
Webhook Processor

Every received webhook is written to ``webhook_logs`` (PENDING) and committed
before anything else, then moved through PROCESSING to SUCCESS, FAILED or
IGNORED. A FAILED row keeps its payload and error and can be replayed by an
operator; nothing is retried automatically.

Event types:
    order.created / order.new            create the order (existing: status check)
    order.updated / order.status_changed  apply the reported status
    order.cancelled                       cancel and restore stock
    stock.updated                         acknowledged, local stock is authoritative
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import WebhookStatus, WebhookEventType
from marketsync.core.exceptions import OrderAlreadyExistsError, WebhookLogNotFoundError
from marketsync.core.utils import utcnow, page_bounds
from marketsync.models.marketplace import Marketplace
from marketsync.models.webhook import WebhookLog
from marketsync.schemas.marketplace import normalize_order, extract_order_number, extract_raw_status
from marketsync.services.notification_service import Notifier, LoggingNotifier
from marketsync.services.order_service import OrderService, OrderOutcome

logger = logging.getLogger(__name__)

CREATE_EVENTS = {WebhookEventType.ORDER_CREATED.value, WebhookEventType.ORDER_NEW.value}
UPDATE_EVENTS = {WebhookEventType.ORDER_UPDATED.value, WebhookEventType.ORDER_STATUS_CHANGED.value}
CANCEL_EVENTS = {WebhookEventType.ORDER_CANCELLED.value}
STOCK_EVENTS = {WebhookEventType.STOCK_UPDATED.value}


@dataclass
class ProcessResult:
    success: bool
    message: str
    status: WebhookStatus
    log_id: Optional[int] = None
    error: Optional[str] = None
    outcome: Optional[OrderOutcome] = None

    def to_response(self) -> Dict[str, Any]:
        response = {"success": self.success, "message": self.message}
        if self.error:
            response["error"] = self.error
        return response


class _Ignored(Exception):
    """Internal signal: the event is valid but not handled."""


def infer_event_type(body: Dict[str, Any]) -> str:
    if not isinstance(body, dict):
        return "unknown"
    event_type = body.get("eventType") or body.get("type")
    if event_type:
        return str(event_type).strip().lower()
    if extract_order_number(order_payload(body)):
        return WebhookEventType.ORDER_CREATED.value
    return "unknown"


def order_payload(body: Dict[str, Any]) -> Dict[str, Any]:
    """The order part of a webhook body: ``data`` when present, else the flat body."""
    data = body.get("data") if isinstance(body, dict) else None
    return data if isinstance(data, dict) else body


class WebhookProcessor:

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[Notifier] = None,
        low_stock_threshold: Optional[int] = None,
    ):
        self.db = db
        self.notifier = notifier or LoggingNotifier()
        self.orders = OrderService(db, low_stock_threshold=low_stock_threshold)

    async def process(self, marketplace: Marketplace, body: Dict[str, Any]) -> ProcessResult:
        """
        Log and process one webhook call. Never raises for processing errors;
        the outcome is in the returned ProcessResult and on the log row.
        """
        event_type = infer_event_type(body)
        log = WebhookLog(
            marketplace_id=marketplace.id,
            event_type=event_type,
            payload=body,
            status=WebhookStatus.PENDING,
        )
        self.db.add(log)
        await self.db.commit()
        logger.info(f"Webhook {log.id} received from {marketplace.name}: {event_type}")

        return await self._run(log)

    async def replay(self, log_id: int) -> ProcessResult:
        """Re-run a logged webhook through the same dispatch."""
        log = await self.db.get(WebhookLog, log_id)
        if log is None:
            raise WebhookLogNotFoundError(f"Webhook log {log_id} not found")

        log.retry_count = (log.retry_count or 0) + 1
        log.error = None
        await self.db.commit()
        logger.info(f"Replaying webhook {log.id} ({log.event_type}), attempt {log.retry_count}")
        return await self._run(log)

    async def _run(self, log: WebhookLog) -> ProcessResult:
        log_id = log.id
        log.status = WebhookStatus.PROCESSING
        await self.db.commit()

        try:
            outcome = await self._dispatch(log)
        except _Ignored as e:
            await self.db.rollback()
            await self.db.refresh(log)
            return await self._finish(log, WebhookStatus.IGNORED, str(e), error=str(e))
        except Exception as e:
            await self.db.rollback()
            await self.db.refresh(log)
            logger.error(f"Webhook {log_id} ({log.event_type}) failed: {e}", exc_info=True)
            return await self._finish(log, WebhookStatus.FAILED, "Processing failed", error=str(e))

        await self.db.commit()
        # A lost creation race rolls the session back and expires the log row
        await self.db.refresh(log)
        if isinstance(outcome, OrderOutcome):
            await self.notifier.notify_all(outcome.events)
            return await self._finish(log, WebhookStatus.SUCCESS, outcome.message, outcome=outcome)
        return await self._finish(log, WebhookStatus.SUCCESS, outcome)

    async def _finish(
        self,
        log: WebhookLog,
        status: WebhookStatus,
        message: str,
        error: Optional[str] = None,
        outcome: Optional[OrderOutcome] = None,
    ) -> ProcessResult:
        log.status = status
        log.message = message
        log.error = error
        log.processed_at = utcnow()
        await self.db.commit()

        return ProcessResult(
            success=status != WebhookStatus.FAILED,
            message=message,
            status=status,
            log_id=log.id,
            error=error,
            outcome=outcome,
        )

    async def _dispatch(self, log: WebhookLog):
        event_type = log.event_type
        body = log.payload or {}
        marketplace_id = log.marketplace_id

        if event_type in CREATE_EVENTS:
            return await self._handle_new_order(marketplace_id, body)
        if event_type in UPDATE_EVENTS:
            return await self._handle_order_update(marketplace_id, body)
        if event_type in CANCEL_EVENTS:
            return await self._handle_cancellation(body)
        if event_type in STOCK_EVENTS:
            return "Stock update ignored, local stock is authoritative"
        raise _Ignored(f"Unknown event type: {event_type}")

    async def _handle_new_order(self, marketplace_id: int, body: Dict[str, Any]) -> OrderOutcome:
        data = normalize_order(order_payload(body))
        try:
            return await self.orders.create_order(marketplace_id, data)
        except OrderAlreadyExistsError:
            pass

        # Re-delivery, or the poller got there first: status check only
        order = await self.orders.get_by_marketplace_order_id(data.order_number)
        outcome = await self.orders.apply_status(order, data.raw_status, data)
        outcome.message = f"Order {data.order_number} already exists"
        if outcome.changed:
            outcome.message += f", status {outcome.previous_status.value} -> {outcome.status.value}"
        else:
            outcome.action = "exists"
        return outcome

    async def _handle_order_update(self, marketplace_id: int, body: Dict[str, Any]):
        payload = order_payload(body)
        data = normalize_order(payload)
        order = await self.orders.get_by_marketplace_order_id(data.order_number)

        if order is None:
            if data.lines:
                # Update arrived before the create: the payload is complete enough to create from
                logger.info(f"Update for unknown order {data.order_number}, creating it")
                return await self._handle_new_order(marketplace_id, body)
            return f"Order {data.order_number} not found, update ignored"

        return await self.orders.apply_status(order, data.raw_status, data)

    async def _handle_cancellation(self, body: Dict[str, Any]):
        payload = order_payload(body)
        order_number = extract_order_number(payload)
        if not order_number:
            data = normalize_order(payload)  # raises with the normalization error
            order_number = data.order_number

        order = await self.orders.get_by_marketplace_order_id(order_number)
        if order is None:
            return f"Order {order_number} not found, cancellation ignored"

        raw_status = extract_raw_status(payload)
        return await self.orders.cancel_order(order, raw_status=raw_status)

    # Operator review surface

    async def get_log(self, log_id: int) -> WebhookLog:
        log = await self.db.get(WebhookLog, log_id)
        if log is None:
            raise WebhookLogNotFoundError(f"Webhook log {log_id} not found")
        return log

    async def list_logs(
        self,
        status: Optional[WebhookStatus] = None,
        marketplace_id: Optional[int] = None,
        event_type: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        query = select(WebhookLog)
        count_query = select(func.count(WebhookLog.id))
        filters = []
        if status is not None:
            filters.append(WebhookLog.status == status)
        if marketplace_id is not None:
            filters.append(WebhookLog.marketplace_id == marketplace_id)
        if event_type:
            filters.append(WebhookLog.event_type == event_type)
        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        bounds = page_bounds(page, limit)
        result = await self.db.execute(
            query.order_by(WebhookLog.id.desc()).offset(bounds["offset"]).limit(bounds["limit"])
        )
        total = (await self.db.execute(count_query)).scalar_one()
        return {
            "logs": list(result.scalars().all()),
            "total": total,
            "page": max(1, page),
            "limit": bounds["limit"],
        }

    async def delete_log(self, log_id: int) -> None:
        log = await self.get_log(log_id)
        await self.db.delete(log)
        await self.db.commit()
        logger.info(f"Deleted webhook log {log_id}")

    async def stats(self) -> Dict[str, int]:
        result = await self.db.execute(
            select(WebhookLog.status, func.count(WebhookLog.id)).group_by(WebhookLog.status)
        )
        counts = {status.value: 0 for status in WebhookStatus}
        for status, count in result.all():
            key = status.value if isinstance(status, WebhookStatus) else str(status)
            counts[key] = count
        counts["total"] = sum(counts.values())
        return counts
