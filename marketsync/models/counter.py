# marketsync/models/counter.py
from sqlalchemy import Column, Integer, String, TIMESTAMP

from marketsync.database import Base


class Counter(Base):
    """Keyed counter with expiry, backing DatabaseCounterStore."""
    __tablename__ = "counters"

    key = Column(String(200), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
    expires_at = Column(TIMESTAMP(timezone=False), nullable=False, index=True)

    def __repr__(self):
        return f"<Counter {self.key}={self.value} until {self.expires_at}>"
