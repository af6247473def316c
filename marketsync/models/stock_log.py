# marketsync/models/stock_log.py
from sqlalchemy import Column, Integer, String, ForeignKey, Enum, UniqueConstraint, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketsync.database import Base
from marketsync.core.enums import StockLogType


class StockLog(Base):
    """
    Append-only record of every stock mutation.

    ``quantity`` is the delta actually applied (new_stock - old_stock), so the
    running sum always reconciles with the product's quantity. When the zero
    floor clamps an oversell, ``requested_quantity`` keeps the delta that was
    asked for.
    """
    __tablename__ = "stock_logs"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)

    type = Column(Enum(StockLogType, name="stocklogtype"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    requested_quantity = Column(Integer, nullable=False)
    old_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    reason = Column(String, nullable=True)
    reference = Column(String, nullable=True, index=True)  # Marketplace order id
    created_by = Column(String, nullable=True)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False, index=True)

    product = relationship("Product", back_populates="stock_logs")

    # An order can SALE / CANCEL a given product at most once
    __table_args__ = (
        UniqueConstraint('order_id', 'product_id', 'type', name='uq_stock_logs_order_product_type'),
    )

    @property
    def was_clamped(self) -> bool:
        return self.quantity != self.requested_quantity

    def __repr__(self):
        return (f"<StockLog(id={self.id}, product_id={self.product_id}, type={self.type}, "
                f"quantity={self.quantity}, {self.old_stock}->{self.new_stock})>")
