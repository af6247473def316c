"""
Stock Ledger

The only code path that changes Product.stock_quantity. Every mutation:
- locks the product row for the rest of the caller's transaction
- clamps the result at zero
- appends exactly one StockLog row with the old and new quantity

Order-driven mutations (SALE, CANCEL, RETURN) are keyed by
(order_id, product_id, type): a second call with the same key is reported as
a duplicate and changes nothing. The unique constraint on stock_logs backs
this up when two transactions race past the check.

The ledger never commits; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import StockLogType
from marketsync.core.exceptions import ProductNotFoundError, ValidationError
from marketsync.models.product import Product
from marketsync.models.stock_log import StockLog

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    product_id: int
    old_stock: int
    new_stock: int
    applied: int        # new_stock - old_stock
    requested: int
    duplicate: bool = False
    log_id: Optional[int] = None

    @property
    def clamped(self) -> bool:
        return self.applied != self.requested


@dataclass
class LedgerAudit:
    product_id: int
    sku: str
    initial: int
    ledger_sum: int
    current: int

    @property
    def expected(self) -> int:
        return self.initial + self.ledger_sum

    @property
    def consistent(self) -> bool:
        return self.expected == self.current


class StockLedger:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _lock_product(self, product_id: int) -> Product:
        result = await self.db.execute(
            select(Product).where(Product.id == product_id).with_for_update()
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product

    async def _existing_entry(self, order_id: int, product_id: int, type: StockLogType) -> Optional[StockLog]:
        result = await self.db.execute(
            select(StockLog).where(
                StockLog.order_id == order_id,
                StockLog.product_id == product_id,
                StockLog.type == type,
            )
        )
        return result.scalars().first()

    async def apply_delta(
        self,
        product_id: int,
        delta: int,
        type: StockLogType,
        order_id: Optional[int] = None,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        created_by: str = "system",
    ) -> LedgerResult:
        """
        Apply a signed quantity change to a product.

        Raises:
            ProductNotFoundError: product does not exist
        """
        product = await self._lock_product(product_id)
        old_stock = product.stock_quantity

        if order_id is not None:
            existing = await self._existing_entry(order_id, product_id, type)
            if existing is not None:
                logger.info(
                    f"Duplicate {type.value} for order {order_id} product {product_id} "
                    f"(log {existing.id}), skipping"
                )
                return LedgerResult(
                    product_id=product_id,
                    old_stock=old_stock,
                    new_stock=old_stock,
                    applied=0,
                    requested=delta,
                    duplicate=True,
                    log_id=existing.id,
                )

        new_stock = max(0, old_stock + delta)
        applied = new_stock - old_stock
        if applied != delta:
            logger.warning(
                f"Stock floor hit for product {product.sku}: requested {delta:+d}, "
                f"applied {applied:+d} ({old_stock} -> {new_stock})"
            )

        product.stock_quantity = new_stock
        log = StockLog(
            product_id=product_id,
            order_id=order_id,
            type=type,
            quantity=applied,
            requested_quantity=delta,
            old_stock=old_stock,
            new_stock=new_stock,
            reason=reason,
            reference=reference,
            created_by=created_by,
        )
        self.db.add(log)
        await self.db.flush()

        logger.debug(f"{type.value} {product.sku}: {old_stock} -> {new_stock} (log {log.id})")
        return LedgerResult(
            product_id=product_id,
            old_stock=old_stock,
            new_stock=new_stock,
            applied=applied,
            requested=delta,
            log_id=log.id,
        )

    async def adjust(
        self,
        product_id: int,
        quantity: int,
        type: StockLogType = StockLogType.ADJUSTMENT,
        reason: Optional[str] = None,
        created_by: str = "operator",
    ) -> LedgerResult:
        """
        Manual stock change.

        ADJUSTMENT sets the stock to ``quantity``; ENTRY adds and EXIT removes
        ``quantity`` units.
        """
        if type == StockLogType.ADJUSTMENT:
            if quantity < 0:
                raise ValidationError("Stock cannot be set below zero")
            product = await self._lock_product(product_id)
            delta = quantity - product.stock_quantity
        elif type in (StockLogType.ENTRY, StockLogType.EXIT):
            if quantity <= 0:
                raise ValidationError(f"{type.value} quantity must be positive")
            delta = quantity if type == StockLogType.ENTRY else -quantity
        else:
            raise ValidationError(f"{type.value} entries are written by order processing only")

        return await self.apply_delta(
            product_id,
            delta,
            type,
            reason=reason or f"Manual {type.value.lower()}",
            created_by=created_by,
        )

    async def history(self, product_id: int, limit: int = 50) -> List[StockLog]:
        result = await self.db.execute(
            select(StockLog)
            .where(StockLog.product_id == product_id)
            .order_by(StockLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def recent(self, type: Optional[StockLogType] = None, limit: int = 100) -> List[StockLog]:
        query = select(StockLog).order_by(StockLog.id.desc()).limit(limit)
        if type is not None:
            query = query.where(StockLog.type == type)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def verify(self, product_id: int) -> LedgerAudit:
        """Check that initial stock plus the ledger sum equals the current stock."""
        product = await self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")

        ledger_sum = (await self.db.execute(
            select(func.coalesce(func.sum(StockLog.quantity), 0)).where(StockLog.product_id == product_id)
        )).scalar_one()

        audit = LedgerAudit(
            product_id=product.id,
            sku=product.sku,
            initial=product.initial_stock_quantity,
            ledger_sum=int(ledger_sum),
            current=product.stock_quantity,
        )
        if not audit.consistent:
            logger.error(
                f"Ledger mismatch for {product.sku}: initial {audit.initial} + ledger {audit.ledger_sum} "
                f"!= current {audit.current}"
            )
        return audit

    async def verify_all(self) -> List[LedgerAudit]:
        product_ids = (await self.db.execute(select(Product.id).order_by(Product.id))).scalars().all()
        return [await self.verify(product_id) for product_id in product_ids]
