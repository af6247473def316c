"""
Schema exports for the application.
"""

from .base import BaseSchema, TimestampedSchema

from .marketplace import (
    NormalizedOrder,
    NormalizedLine,
    normalize_order,
    normalize_line,
    LINE_FIELD_FALLBACKS,
    ORDER_FIELD_FALLBACKS,
)
