"""
Catalog models.

A Product carries the single authoritative stock quantity for an item. The
quantity is only ever changed through the stock ledger, which appends a
StockLog row for every mutation; ``initial_stock_quantity`` is the anchor the
ledger audit sums from.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, CheckConstraint, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketsync.database import Base, JSONType


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(
        TIMESTAMP(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    # Core Product Information
    sku = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Float, nullable=True)
    location = Column(String, nullable=True, index=True)  # Shelf / location code, also matched against barcodes
    product_metadata = Column("metadata", JSONType, default=dict)  # images, attributes

    # Stock
    stock_quantity = Column(Integer, nullable=False, default=0)
    initial_stock_quantity = Column(Integer, nullable=False, default=0)

    # Placeholder products created for unmatched order lines
    requires_review = Column(Boolean, default=False, nullable=False, index=True)

    mappings = relationship("ProductMapping", back_populates="product")
    stock_logs = relationship("StockLog", back_populates="product", order_by="StockLog.id")

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_quantity_nonneg"),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku} stock={self.stock_quantity}>"
