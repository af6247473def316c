import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.dependencies import get_db, get_notifier, get_client_registry
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.schemas.api import SyncResponse
from marketsync.services.notification_service import Notifier
from marketsync.services.poll_ingestion import PollIngestionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("", response_model=SyncResponse)
async def sync_by_status(
    marketplace_id: int = Query(..., alias="marketplaceId"),
    status: str = Query("Created"),
    page: int = Query(0, ge=0),
    size: Optional[int] = Query(None, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    registry: MarketplaceClientRegistry = Depends(get_client_registry),
    notifier: Notifier = Depends(get_notifier),
):
    """Pull one page of packages in ``status`` and ingest them."""
    service = PollIngestionService(db, registry=registry, notifier=notifier)
    summary = await service.sync_by_status(marketplace_id, status, page=page, size=size)
    return summary.to_dict()


@router.post("/all", response_model=SyncResponse)
async def sync_all(
    marketplace_id: int = Query(..., alias="marketplaceId"),
    db: AsyncSession = Depends(get_db),
    registry: MarketplaceClientRegistry = Depends(get_client_registry),
    notifier: Notifier = Depends(get_notifier),
):
    """Pull every pollable status for a marketplace."""
    service = PollIngestionService(db, registry=registry, notifier=notifier)
    summary = await service.sync_all_statuses(marketplace_id)
    logger.info(f"Manual full sync of marketplace {marketplace_id}: {summary.processed} processed, {summary.failed} failed")
    return summary.to_dict()
