"""
Order Service

Shared order logic for both ingestion paths (webhook push and poll pull) and
the operator endpoints:

- create_order: persist an order with its lines and take stock (SALE)
- cancel_order: put back what the order's SALE entries took (CANCEL)
- apply_status: move an order to the status a marketplace reports
- update_status / delete_order: manual corrections

``marketplace_order_id`` is unique. The order row is flushed before anything
else happens, so when two paths race on the same order the loser fails on
that insert, before it has matched a line or touched stock, and gets
OrderAlreadyExistsError.

Nothing here commits. Notifications are collected on the returned
OrderOutcome and sent by the caller once the transaction has committed.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketsync.core.config import get_settings
from marketsync.core.enums import OrderStatus, StockLogType, NotificationType
from marketsync.core.exceptions import OrderAlreadyExistsError, OrderNotFoundError
from marketsync.integrations.events import NotificationEvent
from marketsync.models.order import Order, OrderItem
from marketsync.models.product import Product
from marketsync.models.stock_log import StockLog
from marketsync.schemas.marketplace import NormalizedOrder
from marketsync.services.activity_logger import ActivityLogger
from marketsync.services.matcher import ProductMatcher
from marketsync.services.notification_service import low_stock_event
from marketsync.services.status_reconciler import detect_transition, map_status
from marketsync.services.stock_ledger import StockLedger, LedgerResult

logger = logging.getLogger(__name__)


@dataclass
class OrderOutcome:
    marketplace_order_id: str
    action: str  # created, exists, status_changed, cancelled, unchanged, deleted
    message: str
    order_id: Optional[int] = None
    status: Optional[OrderStatus] = None
    previous_status: Optional[OrderStatus] = None
    stock_changes: List[LedgerResult] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    events: List[NotificationEvent] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.action in ("created", "status_changed", "cancelled", "deleted")


class OrderService:

    def __init__(self, db: AsyncSession, low_stock_threshold: Optional[int] = None):
        self.db = db
        self.ledger = StockLedger(db)
        self.matcher = ProductMatcher(db)
        self.low_stock_threshold = (
            low_stock_threshold if low_stock_threshold is not None else get_settings().LOW_STOCK_THRESHOLD
        )

    def _order_query(self):
        return select(Order).options(
            selectinload(Order.items).selectinload(OrderItem.product_mapping),
            selectinload(Order.marketplace),
        )

    async def get_by_marketplace_order_id(self, marketplace_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            self._order_query()
            .where(Order.marketplace_order_id == marketplace_order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_order(self, order_id: int) -> Order:
        result = await self.db.execute(
            self._order_query().where(Order.id == order_id).execution_options(populate_existing=True)
        )
        order = result.scalars().first()
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def _low_stock_events(self, changes: List[LedgerResult]) -> List[NotificationEvent]:
        events = []
        for change in changes:
            if change.old_stock >= self.low_stock_threshold > change.new_stock:
                product = await self.db.get(Product, change.product_id)
                events.append(low_stock_event(product, self.low_stock_threshold))
        return events

    async def create_order(self, marketplace_id: int, data: NormalizedOrder) -> OrderOutcome:
        """
        Create an order from a normalized payload and take stock for it.

        An order first seen as CANCELLED or REFUNDED is recorded without
        taking stock.

        Raises:
            OrderAlreadyExistsError: the order exists, or a concurrent
                writer created it first. The session has been rolled back.
        """
        order_number = data.order_number
        if await self.get_by_marketplace_order_id(order_number) is not None:
            raise OrderAlreadyExistsError(order_number)

        status = map_status(data.raw_status) or OrderStatus.PENDING
        order = Order(
            marketplace_order_id=order_number,
            marketplace_id=marketplace_id,
            status=status,
            shipment_package_status=data.raw_status,
            shipment_package_id=data.package_id,
            total_amount=data.total_amount,
            order_date=data.order_date,
            last_modified_date=data.last_modified_date,
            customer_first_name=data.customer_first_name,
            customer_last_name=data.customer_last_name,
            customer_email=data.customer_email,
            customer_id=data.customer_id,
            customer_info=data.customer_info(),
            shipment_address=data.shipment_address,
            invoice_address=data.invoice_address,
            cargo_provider_name=data.cargo_provider_name,
            cargo_tracking_number=data.cargo_tracking_number,
            cargo_tracking_link=data.cargo_tracking_link,
        )
        self.db.add(order)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Order {order_number} was created concurrently")
            raise OrderAlreadyExistsError(order_number)

        outcome = OrderOutcome(
            marketplace_order_id=order_number,
            action="created",
            message=f"Order {order_number} created",
            order_id=order.id,
            status=status,
        )

        # product_id -> units
        to_take: Dict[int, int] = {}
        for line in data.lines:
            mapping = await self.matcher.resolve(marketplace_id, line.remote_identifier, line)
            self.db.add(OrderItem(
                order_id=order.id,
                product_mapping_id=mapping.id,
                quantity=line.quantity,
                price=line.unit_price,
                order_line_id=line.order_line_id,
                product_name=line.product_name,
                product_code=line.product_code,
                product_size=line.product_size,
                product_color=line.product_color,
                barcode=line.barcode,
                merchant_sku=line.merchant_sku,
                sku=line.sku,
                amount=line.amount,
                discount=line.discount,
            ))

            if not mapping.sync_stock:
                identifier = line.remote_identifier or mapping.remote_sku
                outcome.unmatched.append(identifier)
                outcome.events.append(NotificationEvent(
                    type=NotificationType.UNMATCHED_PRODUCT,
                    title="Unmatched product",
                    message=f"Order {order_number}: '{line.product_name or identifier}' ({identifier}) has no catalog match",
                    data={
                        "order_number": order_number,
                        "identifier": identifier,
                        "product_id": mapping.product_id,
                        "quantity": line.quantity,
                    },
                ))
                continue

            to_take[mapping.product_id] = to_take.get(mapping.product_id, 0) + line.quantity

        if status.is_closed_for_refund:
            if to_take:
                logger.info(f"Order {order_number} first seen as {status.value}, no stock taken")
        else:
            for product_id, quantity in to_take.items():
                if quantity <= 0:
                    continue
                change = await self.ledger.apply_delta(
                    product_id,
                    -quantity,
                    StockLogType.SALE,
                    order_id=order.id,
                    reason=f"Order {order_number}",
                    reference=order_number,
                )
                outcome.stock_changes.append(change)

        await self.db.flush()

        outcome.events.insert(0, NotificationEvent(
            type=NotificationType.NEW_ORDER,
            title=f"New order {order_number}",
            message=f"{len(data.lines)} line(s), total {data.total_amount:.2f}, customer {data.display_customer_name or '-'}",
            data={
                "order_id": order.id,
                "order_number": order_number,
                "status": status.value,
                "total_amount": data.total_amount,
                "lines": len(data.lines),
            },
        ))
        outcome.events.extend(await self._low_stock_events(outcome.stock_changes))

        logger.info(
            f"Created order {order_number} ({status.value}): {len(data.lines)} lines, "
            f"{len(outcome.stock_changes)} stock changes, {len(outcome.unmatched)} unmatched"
        )
        return outcome

    async def _restore_stock(self, order: Order, reason: str, created_by: str = "system") -> List[LedgerResult]:
        """Reverse the order's SALE entries with CANCEL entries."""
        result = await self.db.execute(
            select(StockLog)
            .where(StockLog.order_id == order.id, StockLog.type == StockLogType.SALE)
            .order_by(StockLog.id)
        )
        changes = []
        for sale in result.scalars().all():
            if sale.quantity == 0:
                continue
            change = await self.ledger.apply_delta(
                sale.product_id,
                -sale.quantity,
                StockLogType.CANCEL,
                order_id=order.id,
                reason=reason,
                reference=order.marketplace_order_id,
                created_by=created_by,
            )
            changes.append(change)
        return changes

    async def _resolve(self, order: Union[Order, str]) -> Order:
        if isinstance(order, Order):
            return order
        found = await self.get_by_marketplace_order_id(order)
        if found is None:
            raise OrderNotFoundError(f"Order {order} not found")
        return found

    async def cancel_order(
        self,
        order: Union[Order, str],
        raw_status: Optional[str] = None,
        reason: Optional[str] = None,
        created_by: str = "system",
    ) -> OrderOutcome:
        """
        Cancel an order and put its stock back.

        A no-op for orders that are already CANCELLED or REFUNDED.

        Raises:
            OrderNotFoundError: no order with that marketplace order id
        """
        order = await self._resolve(order)
        outcome = OrderOutcome(
            marketplace_order_id=order.marketplace_order_id,
            action="unchanged",
            message=f"Order {order.marketplace_order_id} already {order.status.value}",
            order_id=order.id,
            status=order.status,
            previous_status=order.status,
        )
        if order.status.is_closed_for_refund:
            logger.info(f"Cancel skipped: order {order.marketplace_order_id} is already {order.status.value}")
            return outcome

        outcome.stock_changes = await self._restore_stock(
            order, reason or f"Order {order.marketplace_order_id} cancelled", created_by=created_by
        )
        order.status = OrderStatus.CANCELLED
        if raw_status:
            order.shipment_package_status = raw_status
        await self.db.flush()

        outcome.action = "cancelled"
        outcome.status = OrderStatus.CANCELLED
        outcome.message = f"Order {order.marketplace_order_id} cancelled, {len(outcome.stock_changes)} stock entries restored"
        outcome.events.append(self._status_event(order, outcome.previous_status, OrderStatus.CANCELLED))
        logger.info(outcome.message)
        return outcome

    def _status_event(self, order: Order, old: Optional[OrderStatus], new: OrderStatus) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType.ORDER_STATUS_CHANGE,
            title=f"Order {order.marketplace_order_id}: {new.value}",
            message=f"Status changed {old.value if old else '-'} -> {new.value}",
            data={
                "order_id": order.id,
                "order_number": order.marketplace_order_id,
                "old_status": old.value if old else None,
                "new_status": new.value,
                "raw_status": order.shipment_package_status,
            },
        )

    async def apply_status(
        self,
        order: Union[Order, str],
        raw_status: Optional[Union[str, OrderStatus]],
        data: Optional[NormalizedOrder] = None,
        created_by: str = "system",
    ) -> OrderOutcome:
        """
        Move an order to the status a marketplace (or operator) reports.

        The raw string is stored even when it maps to no transition. The
        first move into CANCELLED restores stock; REFUNDED -> CANCELLED only
        changes the status.
        """
        order = await self._resolve(order)
        old_status = order.status

        if raw_status is not None and not isinstance(raw_status, OrderStatus):
            order.shipment_package_status = raw_status
        if data is not None:
            self._refresh_details(order, data)

        transition = detect_transition(old_status, raw_status)
        if transition is None:
            await self.db.flush()
            return OrderOutcome(
                marketplace_order_id=order.marketplace_order_id,
                action="unchanged",
                message=f"Order {order.marketplace_order_id} status unchanged ({old_status.value})",
                order_id=order.id,
                status=old_status,
                previous_status=old_status,
            )

        outcome = OrderOutcome(
            marketplace_order_id=order.marketplace_order_id,
            action="status_changed",
            message=f"Order {order.marketplace_order_id}: {old_status.value} -> {transition.new.value}",
            order_id=order.id,
            status=transition.new,
            previous_status=old_status,
        )
        if transition.restores_stock:
            outcome.stock_changes = await self._restore_stock(
                order, f"Order {order.marketplace_order_id} cancelled", created_by=created_by
            )
            outcome.action = "cancelled"

        order.status = transition.new
        await self.db.flush()

        outcome.events.append(self._status_event(order, old_status, transition.new))
        logger.info(outcome.message)
        return outcome

    def _refresh_details(self, order: Order, data: NormalizedOrder) -> None:
        """Mutable marketplace-side details (cargo, modification time)."""
        if data.last_modified_date:
            order.last_modified_date = data.last_modified_date
        if data.cargo_provider_name:
            order.cargo_provider_name = data.cargo_provider_name
        if data.cargo_tracking_number:
            order.cargo_tracking_number = data.cargo_tracking_number
        if data.cargo_tracking_link:
            order.cargo_tracking_link = data.cargo_tracking_link

    async def update_status(self, order_id: int, status: OrderStatus, user: Optional[str] = None) -> OrderOutcome:
        """Operator status change, with the same stock effects as a marketplace update."""
        order = await self.get_order(order_id)
        outcome = await self.apply_status(order, status, created_by=user or "operator")
        if outcome.changed:
            await ActivityLogger(self.db).log_activity(
                action="status_update",
                entity_type="order",
                entity_id=str(order.id),
                platform=order.marketplace.name if order.marketplace else None,
                details={
                    "marketplace_order_id": order.marketplace_order_id,
                    "old_status": outcome.previous_status.value,
                    "new_status": status.value,
                    "stock_changes": len(outcome.stock_changes),
                },
                user_id=user,
            )
        return outcome

    async def delete_order(self, order_id: int, user: Optional[str] = None) -> OrderOutcome:
        """
        Delete an order and its lines.

        Stock taken by the order goes back unless it is already CANCELLED or
        REFUNDED. Its StockLog rows stay, detached from the order.
        """
        order = await self.get_order(order_id)
        changes: List[LedgerResult] = []
        if not order.status.is_closed_for_refund:
            changes = await self._restore_stock(
                order, f"Order {order.marketplace_order_id} deleted", created_by=user or "operator"
            )

        await self.db.execute(
            update(StockLog).where(StockLog.order_id == order.id).values(order_id=None)
        )
        await ActivityLogger(self.db).log_activity(
            action="delete",
            entity_type="order",
            entity_id=str(order.id),
            platform=order.marketplace.name if order.marketplace else None,
            details={
                "marketplace_order_id": order.marketplace_order_id,
                "status": order.status.value,
                "stock_restored": len(changes),
            },
            user_id=user,
        )
        outcome = OrderOutcome(
            marketplace_order_id=order.marketplace_order_id,
            action="deleted",
            message=f"Order {order.marketplace_order_id} deleted, {len(changes)} stock entries restored",
            order_id=order.id,
            status=order.status,
            previous_status=order.status,
            stock_changes=changes,
        )
        await self.db.delete(order)
        await self.db.flush()
        logger.info(outcome.message)
        return outcome

