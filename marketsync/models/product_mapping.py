# marketsync/models/product_mapping.py
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketsync.database import Base


class ProductMapping(Base):
    """
    Links a local Product to a marketplace's own SKU/barcode for it.

    ``sync_stock`` is the master switch for stock effects: when False (the
    default for placeholder mappings created from unmatched lines) orders
    referencing this mapping never touch the product's quantity.
    """
    __tablename__ = "product_mappings"

    id = Column(Integer, primary_key=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    marketplace_id = Column(Integer, ForeignKey("marketplaces.id"), nullable=False, index=True)

    remote_sku = Column(String, nullable=False, index=True)
    remote_product_id = Column(String, nullable=True)
    remote_product_name = Column(String, nullable=True)
    sync_stock = Column(Boolean, default=True, nullable=False)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False)

    product = relationship("Product", back_populates="mappings")
    marketplace = relationship("Marketplace", back_populates="mappings")

    # One mapping per product per marketplace
    __table_args__ = (
        UniqueConstraint('product_id', 'marketplace_id', name='uq_product_mappings_product_marketplace'),
    )

    def __repr__(self):
        return (f"<ProductMapping(id={self.id}, product_id={self.product_id}, "
                f"marketplace_id={self.marketplace_id}, remote_sku='{self.remote_sku}', sync_stock={self.sync_stock})>")
