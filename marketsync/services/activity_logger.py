# marketsync/services/activity_logger.py
import logging
from typing import Dict, Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.utils import utcnow
from marketsync.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)

class ActivityLogger:
    """
    Records operator and scheduler actions for auditing.

    Entries are added to the caller's session and committed with the action
    they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_activity(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        platform: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> ActivityLog:
        """
        Log an activity in the system.

        Args:
            action: The action performed (status_update, delete, adjust_stock, replay, poll)
            entity_type: The type of entity affected (order, product, webhook_log, marketplace)
            entity_id: The ID of the affected entity
            platform: Optional marketplace name
            details: Optional additional details as a dictionary
            user_id: Optional operator name

        Returns:
            The created ActivityLog instance
        """
        log_entry = ActivityLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            platform=platform,
            details=details,
            user_id=user_id,
            created_at=utcnow()
        )

        self.db.add(log_entry)
        await self.db.flush()

        logger.debug(
            f"Activity logged: {action} {entity_type} {entity_id} "
            f"(platform: {platform or 'N/A'})"
        )
        return log_entry

    async def log_poll(
        self,
        platform: str,
        summary: Dict[str, Any],
    ) -> Optional[ActivityLog]:
        """Log one poller run for a marketplace."""
        return await self.log_activity(
            action="poll",
            entity_type="marketplace",
            entity_id=platform,
            platform=platform,
            details={
                "success": summary.get("success"),
                "processed": summary.get("processed", 0),
                "skipped": summary.get("skipped", 0),
                "failed": summary.get("failed", 0),
                "total": summary.get("total", 0),
                "errors": summary.get("errors", [])[:20],
                "timestamp": utcnow().isoformat()
            }
        )
