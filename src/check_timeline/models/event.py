"""Pydantic model for canonical timeline events."""

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..currency import format_currency


class EventSource(str, Enum):
    """Systems that produce events."""

    CHECKS_API = "checks_api"
    RAYGUN = "raygun"
    PAPER_TRAIL = "paper_trail"
    UNKNOWN = "unknown"


class EventCategory(str, Enum):
    """Broad grouping of an event."""

    CHECK = "check"
    PAYMENT = "payment"
    EXCEPTION = "exception"
    VERSION = "version"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Event severity, drives colour coding in renderers."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


SOURCE_ICONS = {
    EventSource.CHECKS_API.value: "💳",
    EventSource.RAYGUN.value: "🐛",
    EventSource.PAPER_TRAIL.value: "📋",
    EventSource.UNKNOWN.value: "❓",
}


def _loose_label(value: Any) -> str:
    """Normalize an enum member or loose string (e.g. ":Payment ") to "payment"."""
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().lstrip(":").lower()


def parse_iso_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 string or datetime into an aware UTC datetime.

    Naive datetimes are taken to be UTC.

    Raises:
        ValueError: If value is None or not a parseable timestamp
    """
    if value is None:
        raise ValueError("Cannot parse empty timestamp")

    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid timestamp '{value}': {e}") from e

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def make_event_id(check_id: Optional[str], source_name: str, *components: Any) -> str:
    """Deterministic event id: same inputs always produce the same id."""
    parts = [str(check_id or ""), source_name, *(str(c) for c in components)]
    return hashlib.sha1(":".join(parts).encode("utf-8")).hexdigest()


class Event(BaseModel):
    """Canonical, immutable timeline event.

    Every source produces a list of these. Monetary amounts are minor units;
    negative amounts are debits, refunds or discounts.
    """

    id: str = Field(..., description="Deterministic content hash")
    timestamp: datetime = Field(..., description="When the event occurred (UTC)")
    source: str = Field(..., description="Origin system, e.g. 'checks_api'")
    category: EventCategory = Field(default=EventCategory.UNKNOWN)
    event_type: str = Field(..., description="Dotted label, e.g. 'payment.captured'")
    title: str = Field(..., description="Short headline")
    description: Optional[str] = Field(default=None, description="Multi-line detail")
    severity: Severity = Field(default=Severity.INFO)
    amount: Optional[int] = Field(default=None, description="Minor-unit monetary value")
    currency: str = Field(default="GBP", description="ISO 4217 code")
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        return parse_iso_timestamp(value)

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, value: Any) -> str:
        # Unrecognized sources are kept verbatim
        return _loose_label(value)

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> EventCategory:
        label = _loose_label(value)
        try:
            return EventCategory(label)
        except ValueError:
            return EventCategory.UNKNOWN

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> Severity:
        label = _loose_label(value)
        try:
            return Severity(label)
        except ValueError:
            return Severity.INFO

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, str):
            return int(float(value))
        return int(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _coerce_currency(cls, value: Any) -> str:
        return str(value or "GBP").strip().upper()

    @property
    def formatted_amount(self) -> Optional[str]:
        """Amount formatted in the event's own currency, e.g. "£4.00"."""
        if self.amount is None:
            return None
        return format_currency(self.amount, self.currency)

    @property
    def source_icon(self) -> str:
        return SOURCE_ICONS.get(self.source, SOURCE_ICONS[EventSource.UNKNOWN.value])

    @property
    def is_error(self) -> bool:
        return self.severity in (Severity.ERROR, Severity.CRITICAL)

    def __lt__(self, other: "Event") -> bool:
        return self.timestamp < other.timestamp

    def __gt__(self, other: "Event") -> bool:
        return self.timestamp > other.timestamp
