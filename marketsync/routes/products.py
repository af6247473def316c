"""
Stock ledger and catalog review endpoints.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import get_settings
from marketsync.core.enums import StockLogType
from marketsync.core.exceptions import ProductNotFoundError, ValidationError
from marketsync.dependencies import get_db, get_notifier
from marketsync.schemas.api import (
    StockLogRead,
    StockAdjustRequest,
    LedgerAuditRead,
    ProductRead,
    MappingLinkRequest,
    MappingRead,
)
from marketsync.services.activity_logger import ActivityLogger
from marketsync.services.matcher import ProductMatcher
from marketsync.services.notification_service import Notifier, check_low_stock
from marketsync.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)
router = APIRouter(tags=["stock"])


@router.get("/stock-logs", response_model=List[StockLogRead])
async def list_stock_logs(
    type: Optional[StockLogType] = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    logs = await StockLedger(db).recent(type=type, limit=limit)
    return [StockLogRead.from_orm_model(log) for log in logs]


@router.get("/products/review-queue", response_model=List[ProductRead])
async def review_queue(limit: int = Query(100, ge=1, le=500), db: AsyncSession = Depends(get_db)):
    """Placeholder products created for unmatched order lines."""
    products = await ProductMatcher(db).list_review_queue(limit=limit)
    return [ProductRead.from_orm_model(product) for product in products]


@router.get("/products/low-stock", response_model=List[ProductRead])
async def low_stock(
    threshold: Optional[int] = Query(None, ge=0),
    notify: bool = False,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    threshold = threshold if threshold is not None else get_settings().LOW_STOCK_THRESHOLD
    products = await check_low_stock(db, notifier if notify else None, threshold)
    return [ProductRead.from_orm_model(product) for product in products]


@router.get("/products/{product_id}/stock-logs", response_model=List[StockLogRead])
async def product_stock_logs(
    product_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    logs = await StockLedger(db).history(product_id, limit=limit)
    return [StockLogRead.from_orm_model(log) for log in logs]


@router.get("/products/{product_id}/ledger-audit", response_model=LedgerAuditRead)
async def ledger_audit(product_id: int, db: AsyncSession = Depends(get_db)):
    """Initial stock + sum of stock log quantities vs. current stock."""
    try:
        audit = await StockLedger(db).verify(product_id)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return LedgerAuditRead(
        product_id=audit.product_id,
        sku=audit.sku,
        initial=audit.initial,
        ledger_sum=audit.ledger_sum,
        current=audit.current,
        expected=audit.expected,
        consistent=audit.consistent,
    )


@router.post("/products/{product_id}/adjust-stock", response_model=StockLogRead)
async def adjust_stock(
    product_id: int,
    request: StockAdjustRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger = StockLedger(db)
    try:
        result = await ledger.adjust(
            product_id,
            request.quantity,
            type=request.type,
            reason=request.reason,
            created_by=request.user or "operator",
        )
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await ActivityLogger(db).log_activity(
        action="adjust_stock",
        entity_type="product",
        entity_id=str(product_id),
        details={
            "type": request.type.value,
            "old_stock": result.old_stock,
            "new_stock": result.new_stock,
            "reason": request.reason,
        },
        user_id=request.user,
    )
    await db.commit()

    logs = await ledger.history(product_id, limit=1)
    return StockLogRead.from_orm_model(logs[0])


@router.put("/mappings/{mapping_id}", response_model=MappingRead)
async def link_mapping(
    mapping_id: int,
    request: MappingLinkRequest,
    db: AsyncSession = Depends(get_db),
):
    """Point a mapping (usually a placeholder's) at a real product."""
    try:
        mapping = await ProductMatcher(db).link_mapping(mapping_id, request.product_id, sync_stock=request.sync_stock)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await db.commit()
    return MappingRead.from_orm_model(mapping)
