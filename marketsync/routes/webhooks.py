"""
Webhook endpoints.

POST /webhooks/{marketplace_name} always answers 200 with
``{success, message, error?}`` so marketplaces do not retry on processing
errors; failures are kept on the webhook log for replay. Only a bad
signature is rejected (401).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import get_settings
from marketsync.core.counter_store import CounterStore
from marketsync.core.enums import WebhookStatus
from marketsync.core.exceptions import WebhookLogNotFoundError
from marketsync.core.security import verify_webhook_signature
from marketsync.dependencies import get_db, get_notifier, get_counter_store
from marketsync.models.marketplace import Marketplace
from marketsync.schemas.api import WebhookResponse, WebhookLogList, WebhookLogRead
from marketsync.services.activity_logger import ActivityLogger
from marketsync.services.notification_service import Notifier
from marketsync.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADERS = ("X-Webhook-Signature", "X-Trendyol-Signature", "X-Hepsiburada-Signature")


async def get_marketplace_by_name(db: AsyncSession, name: str) -> Optional[Marketplace]:
    result = await db.execute(
        select(Marketplace).where(func.lower(Marketplace.name) == name.lower())
    )
    return result.scalars().first()


async def check_signature(
    request: Request,
    marketplace: Marketplace,
    body: bytes,
    counters: CounterStore,
) -> None:
    """
    Reject the call (401) when the signature does not verify. A marketplace
    with its own webhook secret must sign every call; the global secret
    only applies to calls that carry a signature.
    """
    settings = get_settings()
    signature = next((request.headers.get(h) for h in SIGNATURE_HEADERS if request.headers.get(h)), None)
    secret = marketplace.webhook_secret or settings.WEBHOOK_SECRET

    if signature is None and not marketplace.webhook_secret:
        return
    if signature and secret and verify_webhook_signature(body, signature, secret):
        return

    failures = await counters.incr(f"webhook_signature:{marketplace.id}", settings.SIGNATURE_FAILURE_WINDOW)
    if failures == settings.SIGNATURE_FAILURE_LIMIT:
        logger.error(
            f"{failures} invalid webhook signatures for {marketplace.name} within "
            f"{settings.SIGNATURE_FAILURE_WINDOW}s"
        )
    else:
        logger.warning(f"Invalid webhook signature for {marketplace.name} ({failures} in window)")
    raise HTTPException(status_code=401, detail="Invalid signature")


# Log routes first so "logs" is not taken for a marketplace name

@router.get("/webhooks/logs", response_model=WebhookLogList)
async def list_webhook_logs(
    status: Optional[WebhookStatus] = None,
    marketplace_id: Optional[int] = Query(None, alias="marketplaceId"),
    event_type: Optional[str] = Query(None, alias="eventType"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Webhook log rows, newest first."""
    processor = WebhookProcessor(db)
    result = await processor.list_logs(status=status, marketplace_id=marketplace_id, event_type=event_type, page=page, limit=limit)
    return WebhookLogList(
        logs=[WebhookLogRead.from_orm_model(log) for log in result["logs"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
    )


@router.get("/webhooks/logs/stats")
async def webhook_log_stats(db: AsyncSession = Depends(get_db)):
    return await WebhookProcessor(db).stats()


@router.post("/webhooks/logs/{log_id}/retry", response_model=WebhookResponse)
async def retry_webhook(
    log_id: int,
    user: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Replay a logged webhook through the normal processing path."""
    processor = WebhookProcessor(db, notifier=notifier)
    try:
        result = await processor.replay(log_id)
    except WebhookLogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    await ActivityLogger(db).log_activity(
        action="replay",
        entity_type="webhook_log",
        entity_id=str(log_id),
        details={"status": result.status.value, "message": result.message},
        user_id=user,
    )
    await db.commit()
    return result.to_response()


@router.delete("/webhooks/logs/{log_id}")
async def delete_webhook_log(
    log_id: int,
    user: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    processor = WebhookProcessor(db)
    try:
        await processor.delete_log(log_id)
    except WebhookLogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    await ActivityLogger(db).log_activity(
        action="delete",
        entity_type="webhook_log",
        entity_id=str(log_id),
        user_id=user,
    )
    await db.commit()
    return {"success": True, "message": f"Webhook log {log_id} deleted"}


@router.get("/webhooks/{marketplace_name}")
async def webhook_liveness(marketplace_name: str):
    return {"status": "ok", "message": f"Webhook endpoint for {marketplace_name} is active"}


@router.post("/webhooks/{marketplace_name}", response_model=WebhookResponse)
async def receive_webhook(
    marketplace_name: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    counters: CounterStore = Depends(get_counter_store),
):
    """Receive an order event from a marketplace."""
    marketplace = await get_marketplace_by_name(db, marketplace_name)
    if marketplace is None:
        logger.warning(f"Webhook for unknown marketplace '{marketplace_name}'")
        return WebhookResponse(success=False, message=f"Marketplace {marketplace_name} not found")

    body = await request.body()
    await check_signature(request, marketplace, body, counters)

    try:
        payload = await request.json()
    except ValueError as e:
        logger.warning(f"Invalid JSON from {marketplace.name}: {e}")
        return WebhookResponse(success=False, message="Invalid JSON body", error=str(e))
    if not isinstance(payload, dict):
        return WebhookResponse(success=False, message="Webhook body must be a JSON object")

    try:
        result = await WebhookProcessor(db, notifier=notifier).process(marketplace, payload)
    except Exception as e:
        # Only reachable when the log row itself cannot be written
        logger.exception(f"Webhook from {marketplace.name} could not be logged: {e}")
        return WebhookResponse(success=False, message="Webhook could not be recorded", error=str(e))

    return result.to_response()
