"""Domain enumerations for Load Insights.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

import calendar
from datetime import date
from enum import Enum


class StopType(str, Enum):
    """Whether a stop is the origin or a destination of a load."""

    PICKUP = "pickup"
    DELIVERY = "delivery"


class SourceChannel(str, Enum):
    """Entry point a rate confirmation arrived through."""

    UPLOAD = "upload"
    GMAIL = "gmail"
    EXTENSION = "extension"


class BrokerStatus(str, Enum):
    """User-managed relationship status of a broker."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PROSPECT = "prospect"


class InteractionType(str, Enum):
    """Kind of touchpoint logged against a broker."""

    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"
    NOTE = "note"


class TaskStatus(str, Enum):
    """Lifecycle of a broker follow-up task."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FileOutcome(str, Enum):
    """Per-file result of an ingestion run. Every file gets exactly one."""

    EXTRACTED = "extracted"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    SKIPPED = "skipped"


class ModelErrorCode(str, Enum):
    """Machine-readable causes attached to failed extraction results."""

    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_API_KEY = "invalid_api_key"
    TRANSIENT = "transient"
    EMPTY_TEXT = "empty_text"
    INVALID_RESPONSE = "invalid_response"
    MISSING_REQUIRED_FIELDS = "missing_required_fields"


class TimeRange(str, Enum):
    """Look-back presets shared by the Gmail scan and dashboard metrics."""

    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    TWELVE_MONTHS = "12m"

    @property
    def months(self) -> int:
        return int(self.value.rstrip("m"))

    def start_date(self, today: date) -> date:
        """Same day ``months`` earlier, clamped to the end of shorter months."""
        month_index = today.year * 12 + (today.month - 1) - self.months
        year, month = divmod(month_index, 12)
        last_day = calendar.monthrange(year, month + 1)[1]
        return date(year, month + 1, min(today.day, last_day))
