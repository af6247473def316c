# marketsync/models/marketplace.py
from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketsync.database import Base


class Marketplace(Base):
    """
    A connected marketplace account (one per store). Holds the API credentials
    used to build the polling client and the secret used to verify webhooks.
    """
    __tablename__ = "marketplaces"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)  # 'Trendyol', 'Hepsiburada'
    api_key = Column(String, nullable=True)
    api_secret = Column(String, nullable=True)
    supplier_id = Column(String, nullable=True)
    webhook_secret = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False)

    mappings = relationship("ProductMapping", back_populates="marketplace")
    orders = relationship("Order", back_populates="marketplace")

    @property
    def slug(self) -> str:
        return self.name.lower().replace(' ', '')

    def __repr__(self):
        return f"<Marketplace(id={self.id}, name='{self.name}', active={self.is_active})>"
