"""Pydantic models for Check Timeline."""

from .event import (
    Event,
    EventCategory,
    EventSource,
    Severity,
    make_event_id,
    parse_iso_timestamp,
)

__all__ = [
    "Event",
    "EventCategory",
    "EventSource",
    "Severity",
    "make_event_id",
    "parse_iso_timestamp",
]
