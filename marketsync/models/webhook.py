# marketsync/models/webhook.py
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Enum, TIMESTAMP
from sqlalchemy.sql import func

from marketsync.database import Base, JSONType
from marketsync.core.enums import WebhookStatus


class WebhookLog(Base):
    """
    One row per received webhook call, written before any processing so a
    delivery is never silently lost. Terminal rows only change on manual replay.
    """
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True)
    marketplace_id = Column(Integer, ForeignKey("marketplaces.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    payload = Column(JSONType, nullable=False)

    status = Column(Enum(WebhookStatus, name="webhookstatus"), nullable=False, default=WebhookStatus.PENDING, index=True)
    message = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now(), nullable=False, index=True)
    processed_at = Column(TIMESTAMP(timezone=False), nullable=True)

    def __repr__(self):
        return f"<WebhookLog(id={self.id}, event_type='{self.event_type}', status={self.status})>"
