"""
Keyed counters with a time-to-live.

Rate tracking (e.g. repeated bad webhook signatures from one marketplace) goes
through an injected CounterStore rather than a module-level dict, so several
service instances behind a load balancer see the same counts.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from marketsync.core.utils import utcnow
from marketsync.models.counter import Counter

logger = logging.getLogger(__name__)


class CounterStore(ABC):

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key`` and return the new value. A fresh window starts when the key has expired."""
        pass

    @abstractmethod
    async def get(self, key: str) -> int:
        pass

    @abstractmethod
    async def reset(self, key: str) -> None:
        pass


class InMemoryCounterStore(CounterStore):
    """Process-local store. Fine for tests and single-instance deployments."""

    def __init__(self):
        self._values: Dict[str, Tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            now = time.monotonic()
            value, expires = self._values.get(key, (0, 0.0))
            if expires <= now:
                value, expires = 0, now + ttl_seconds
            value += 1
            self._values[key] = (value, expires)
            return value

    async def get(self, key: str) -> int:
        value, expires = self._values.get(key, (0, 0.0))
        return value if expires > time.monotonic() else 0

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._values.pop(key, None)


class DatabaseCounterStore(CounterStore):
    """Counters kept in the ``counters`` table, shared by every instance."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def incr(self, key: str, ttl_seconds: int) -> int:
        for attempt in range(2):
            async with self.session_factory() as session:
                now = utcnow()
                row = (await session.execute(
                    select(Counter).where(Counter.key == key).with_for_update()
                )).scalar_one_or_none()

                if row is None:
                    row = Counter(key=key, value=0, expires_at=now + timedelta(seconds=ttl_seconds))
                    session.add(row)
                elif row.expires_at <= now:
                    row.value = 0
                    row.expires_at = now + timedelta(seconds=ttl_seconds)

                row.value += 1
                try:
                    await session.commit()
                    return row.value
                except IntegrityError:
                    # Another instance inserted the key first; go again and update its row
                    await session.rollback()
                    logger.debug(f"Counter {key} insert raced (attempt {attempt + 1}), retrying")
        raise RuntimeError(f"Could not increment counter {key}")

    async def get(self, key: str) -> int:
        async with self.session_factory() as session:
            row = await session.get(Counter, key)
            if row is None or row.expires_at <= utcnow():
                return 0
            return row.value

    async def reset(self, key: str) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(Counter).where(Counter.key == key))
            await session.commit()

    async def purge_expired(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(delete(Counter).where(Counter.expires_at <= utcnow()))
            await session.commit()
            return result.rowcount or 0
