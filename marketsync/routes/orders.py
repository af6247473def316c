import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.exceptions import OrderNotFoundError
from marketsync.dependencies import get_db, get_notifier
from marketsync.schemas.api import OrderRead, OrderStatusUpdate, OrderActionResponse
from marketsync.services.notification_service import Notifier
from marketsync.services.order_service import OrderService, OrderOutcome

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


def _action_response(outcome: OrderOutcome) -> OrderActionResponse:
    return OrderActionResponse(
        success=True,
        action=outcome.action,
        message=outcome.message,
        status=outcome.status,
        stock_changes=len(outcome.stock_changes),
    )


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    try:
        order = await OrderService(db).get_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return OrderRead.from_orm_model(order)


@router.put("/{order_id}/status", response_model=OrderActionResponse)
async def update_order_status(
    order_id: int,
    update: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Manual status change. Moving to CANCELLED restores stock once."""
    try:
        outcome = await OrderService(db).update_status(order_id, update.status, user=update.user)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    await db.commit()
    await notifier.notify_all(outcome.events)
    return _action_response(outcome)


@router.delete("/{order_id}", response_model=OrderActionResponse)
async def delete_order(
    order_id: int,
    user: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Delete an order; stock goes back unless it was already cancelled or refunded."""
    try:
        outcome = await OrderService(db).delete_order(order_id, user=user)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    await db.commit()
    return _action_response(outcome)
