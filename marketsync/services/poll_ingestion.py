"""
Poll Ingestion

Pulls shipment packages from a marketplace, one remote status and page at a
time, and feeds them through the same OrderService as the webhook path.

Each package is committed on its own: a failure on one package (or a client
error on a later page) never rolls back packages already processed.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketsync.core.config import get_settings
from marketsync.core.exceptions import (
    MarketplaceClientError,
    MarketplaceNotFoundError,
    OrderAlreadyExistsError,
)
from marketsync.integrations.base import PackagePage
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.models.marketplace import Marketplace
from marketsync.schemas.marketplace import normalize_order, NormalizedOrder
from marketsync.services.activity_logger import ActivityLogger
from marketsync.services.notification_service import Notifier, LoggingNotifier
from marketsync.services.order_service import OrderService, OrderOutcome
from marketsync.services.status_reconciler import POLLABLE_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class SyncSummary:
    success: bool = True
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, other: "SyncSummary") -> None:
        self.success = self.success and other.success
        self.processed += other.processed
        self.skipped += other.skipped
        self.failed += other.failed
        self.total += other.total
        self.errors.extend(other.errors)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_last_page(package_page: PackagePage, page: int) -> bool:
    """True when the marketplace reports no page after ``page``."""
    if package_page.total_pages:
        return page + 1 >= package_page.total_pages
    if not package_page.content:
        return True
    return bool(package_page.size) and len(package_page.content) < package_page.size


class PollIngestionService:

    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[MarketplaceClientRegistry] = None,
        notifier: Optional[Notifier] = None,
        page_size: Optional[int] = None,
    ):
        self.db = db
        self.registry = registry or MarketplaceClientRegistry()
        self.notifier = notifier or LoggingNotifier()
        self.page_size = page_size or get_settings().POLL_PAGE_SIZE
        self.orders = OrderService(db)

    async def _get_marketplace(self, marketplace_id: int) -> Marketplace:
        marketplace = await self.db.get(Marketplace, marketplace_id)
        if marketplace is None:
            raise MarketplaceNotFoundError(f"Marketplace {marketplace_id} not found")
        return marketplace

    async def sync_by_status(
        self,
        marketplace_id: int,
        remote_status: str,
        page: int = 0,
        size: Optional[int] = None,
    ) -> SyncSummary:
        """
        Fetch one page of packages in ``remote_status`` and ingest them.

        Client failures end the run with success=False; they are reported,
        not raised.
        """
        summary, _ = await self._sync_page(marketplace_id, remote_status, page, size or self.page_size)
        return summary

    async def _sync_page(
        self,
        marketplace_id: int,
        remote_status: str,
        page: int,
        size: int,
    ) -> Tuple[SyncSummary, Optional[PackagePage]]:
        summary = SyncSummary()
        try:
            marketplace = await self._get_marketplace(marketplace_id)
            client = self.registry.get_client(marketplace)
            package_page = await client.fetch_packages(remote_status, page=page, size=size)
        except (MarketplaceClientError, MarketplaceNotFoundError) as e:
            logger.error(f"Poll {remote_status} page {page} for marketplace {marketplace_id} aborted: {e}")
            summary.success = False
            summary.errors.append(f"{remote_status}: {e}")
            return summary, None

        marketplace_name = marketplace.name
        summary.total = len(package_page.content)
        for package in package_page.content:
            try:
                outcome = await self._ingest_package(marketplace_id, package)
            except Exception as e:
                await self.db.rollback()
                number = package.get("orderNumber") if isinstance(package, dict) else None
                logger.error(f"Package {number or '?'} failed: {e}", exc_info=True)
                summary.failed += 1
                summary.errors.append(f"{number or '?'}: {e}")
                continue

            if outcome is None:
                summary.skipped += 1
                continue

            await self.db.commit()
            summary.processed += 1
            await self.notifier.notify_all(outcome.events)

        logger.info(
            f"Poll {marketplace_name} {remote_status} page {page}: "
            f"{summary.processed} processed, {summary.skipped} skipped, {summary.failed} failed of {summary.total}"
        )
        return summary, package_page

    async def _ingest_package(self, marketplace_id: int, package: Dict[str, Any]) -> Optional[OrderOutcome]:
        """
        Create the order, or check its status if it exists. Returns None when
        there was nothing to do.
        """
        data = normalize_order(package)
        order = await self.orders.get_by_marketplace_order_id(data.order_number)
        if order is None:
            try:
                return await self.orders.create_order(marketplace_id, data)
            except OrderAlreadyExistsError:
                # The webhook path created it in the meantime
                order = await self.orders.get_by_marketplace_order_id(data.order_number)

        return await self._check_status(order, data)

    async def _check_status(self, order, data: NormalizedOrder) -> Optional[OrderOutcome]:
        if not data.raw_status or order.shipment_package_status == data.raw_status:
            return None

        logger.info(
            f"Order {data.order_number}: package status {order.shipment_package_status} -> {data.raw_status}"
        )
        return await self.orders.apply_status(order, data.raw_status, data)

    async def sync_all_statuses(
        self,
        marketplace_id: int,
        statuses: Optional[List[str]] = None,
        max_pages: int = 10,
    ) -> SyncSummary:
        """Walk every pollable status, following pages until the last one."""
        summary = SyncSummary()
        for remote_status in statuses or POLLABLE_STATUSES:
            page = 0
            while page < max_pages:
                page_summary, package_page = await self._sync_page(
                    marketplace_id, remote_status, page, self.page_size
                )
                summary.merge(page_summary)
                if package_page is None or is_last_page(package_page, page):
                    break
                page += 1
        return summary

    async def sync_active_marketplaces(self) -> Dict[str, SyncSummary]:
        result = await self.db.execute(
            select(Marketplace).where(Marketplace.is_active.is_(True)).order_by(Marketplace.id)
        )
        marketplaces = [(m.id, m.name) for m in result.scalars().all()]

        summaries = {}
        for marketplace_id, name in marketplaces:
            if not self.registry.supports(name.lower().replace(' ', '')):
                logger.debug(f"No polling client for {name}, skipping")
                continue
            summary = await self.sync_all_statuses(marketplace_id)
            await ActivityLogger(self.db).log_poll(name, summary.to_dict())
            await self.db.commit()
            summaries[name] = summary
        return summaries


async def poll_marketplace(
    session_factory: async_sessionmaker,
    marketplace_id: int,
    registry: MarketplaceClientRegistry,
    notifier: Optional[Notifier] = None,
) -> SyncSummary:
    """Run a full poll of one marketplace in its own session (scheduler entry point)."""
    async with session_factory() as session:
        service = PollIngestionService(session, registry=registry, notifier=notifier)
        summary = await service.sync_all_statuses(marketplace_id)
        marketplace = await session.get(Marketplace, marketplace_id)
        await ActivityLogger(session).log_poll(marketplace.name if marketplace else str(marketplace_id), summary.to_dict())
        await session.commit()
        return summary
