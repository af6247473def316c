# marketsync/models/activity_log.py
from sqlalchemy import Column, Integer, String, TIMESTAMP
from sqlalchemy.sql import func

from marketsync.database import Base, JSONType


class ActivityLog(Base):
    """
    Records operator and scheduler activity for auditing.

    This includes:
    - Manual order status changes and deletions
    - Manual stock adjustments
    - Webhook replays and deletions
    - Scheduled poll runs
    """
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True)
    action = Column(String(50), nullable=False, index=True)  # 'status_update', 'delete', 'adjust_stock', 'replay', 'poll'
    entity_type = Column(String(50), nullable=False, index=True)  # 'order', 'product', 'webhook_log', 'marketplace'
    entity_id = Column(String(100), nullable=False, index=True)
    platform = Column(String(50), nullable=True, index=True)

    details = Column(JSONType, nullable=True)
    user_id = Column(String(100), nullable=True)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ActivityLog {self.action} {self.entity_type} {self.entity_id}>"
