# marketsync/models/order.py
from sqlalchemy import Column, Integer, String, Float, ForeignKey, Enum, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketsync.database import Base, JSONType
from marketsync.core.enums import OrderStatus


class Order(Base):
    """
    A marketplace order. ``marketplace_order_id`` is unique across the table and
    is the idempotency key for both ingestion paths: the first writer creates
    the row, any later or concurrent writer hits the constraint.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    marketplace_order_id = Column(String, unique=True, nullable=False)
    marketplace_id = Column(Integer, ForeignKey("marketplaces.id"), nullable=False, index=True)

    status = Column(Enum(OrderStatus, name="orderstatus"), nullable=False, default=OrderStatus.PENDING, index=True)
    shipment_package_status = Column(String, nullable=True)  # Raw marketplace status, for traceability
    shipment_package_id = Column(String, nullable=True)

    total_amount = Column(Float, nullable=True)
    order_date = Column(TIMESTAMP(timezone=False), nullable=True)
    last_modified_date = Column(TIMESTAMP(timezone=False), nullable=True)

    # Customer
    customer_first_name = Column(String, nullable=True)
    customer_last_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_id = Column(String, nullable=True)
    customer_info = Column(JSONType, nullable=True)
    shipment_address = Column(JSONType, nullable=True)
    invoice_address = Column(JSONType, nullable=True)

    # Cargo
    cargo_provider_name = Column(String, nullable=True)
    cargo_tracking_number = Column(String, nullable=True)
    cargo_tracking_link = Column(String, nullable=True)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(
        TIMESTAMP(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    marketplace = relationship("Marketplace", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} marketplace_order_id={self.marketplace_order_id} status={self.status}>"


class OrderItem(Base):
    """A single order line. Immutable once written."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_mapping_id = Column(Integer, ForeignKey("product_mappings.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=True)

    # Marketplace descriptive fields
    order_line_id = Column(String, nullable=True)
    product_name = Column(String, nullable=True)
    product_code = Column(String, nullable=True)
    product_size = Column(String, nullable=True)
    product_color = Column(String, nullable=True)
    barcode = Column(String, nullable=True)
    merchant_sku = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    amount = Column(Float, nullable=True)
    discount = Column(Float, nullable=True)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")
    product_mapping = relationship("ProductMapping")
