"""
Utility functions for the application.
"""
from datetime import datetime, timezone
from typing import Any, Dict


def utcnow() -> datetime:
    """Naive UTC now, matching the TIMESTAMP(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def page_bounds(page: int, limit: int, max_limit: int = 200) -> Dict[str, Any]:
    """1-based page / limit to offset / limit, clamped."""
    page = max(1, page)
    limit = max(1, min(limit, max_limit))
    return {"offset": (page - 1) * limit, "limit": limit}
