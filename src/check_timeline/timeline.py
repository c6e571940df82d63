"""Sorted, queryable collection of events for one check."""

from collections import Counter
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, NamedTuple, Optional

from .currency import format_currency
from .models.event import Event, EventCategory, Severity

DEFAULT_CURRENCY = "GBP"


class LedgerEntry(NamedTuple):
    """Running total after one amount-bearing event."""

    event: Event
    running_total: int


def format_duration(seconds: float) -> str:
    """'< 1s', '47s', '14m 33s', '1h 2m 3s'"""
    if seconds < 1:
        return "< 1s"

    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class Timeline:
    """Immutable, chronologically ordered view over a check's events.

    Events are sorted by timestamp on construction. The sort is stable, so
    events sharing a timestamp keep the order they were supplied in. Filter
    methods return new Timelines that keep the check id and authoritative
    total.

    Args:
        check_id: The check the events describe
        events: Events from any number of sources, in any order
        check_total_cents: Authoritative total reported by a source, if any
    """

    def __init__(
        self,
        check_id: Optional[str],
        events: Iterable[Event] = (),
        check_total_cents: Optional[int] = None,
    ):
        self.check_id = check_id
        self.check_total_cents = check_total_cents
        self._events: tuple[Event, ...] = tuple(sorted(events, key=lambda e: e.timestamp))

    # -- collection ---------------------------------------------------------

    @property
    def events(self) -> tuple[Event, ...]:
        return self._events

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index: int) -> Event:
        return self._events[index]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def is_empty(self) -> bool:
        return not self._events

    def __repr__(self) -> str:
        return f"Timeline(check_id={self.check_id!r}, events={len(self._events)})"

    # -- time span ----------------------------------------------------------

    @property
    def started_at(self) -> Optional[datetime]:
        return self._events[0].timestamp if self._events else None

    @property
    def ended_at(self) -> Optional[datetime]:
        return self._events[-1].timestamp if self._events else None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.is_empty:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def duration(self) -> str:
        seconds = self.duration_seconds
        if seconds is None:
            return "n/a"
        return format_duration(seconds)

    # -- partitions ---------------------------------------------------------

    @property
    def sources(self) -> list[str]:
        """Distinct sources, in order of first appearance."""
        return list(dict.fromkeys(event.source for event in self._events))

    @property
    def categories(self) -> list[EventCategory]:
        return list(dict.fromkeys(event.category for event in self._events))

    def _group_by(self, key: Callable[[Event], Any]) -> dict[Any, list[Event]]:
        groups: dict[Any, list[Event]] = {}
        for event in self._events:
            groups.setdefault(key(event), []).append(event)
        return groups

    @property
    def by_source(self) -> dict[str, list[Event]]:
        return self._group_by(lambda e: e.source)

    @property
    def by_category(self) -> dict[EventCategory, list[Event]]:
        return self._group_by(lambda e: e.category)

    @property
    def severity_counts(self) -> dict[str, int]:
        counts = Counter(event.severity.value for event in self._events)
        return {severity.value: counts.get(severity.value, 0) for severity in Severity}

    def errors(self) -> "Timeline":
        """Error and critical events only."""
        return self._derive(event for event in self._events if event.is_error)

    @property
    def error_count(self) -> int:
        return sum(1 for event in self._events if event.is_error)

    # -- filtering ----------------------------------------------------------

    def _derive(self, events: Iterable[Event]) -> "Timeline":
        return Timeline(self.check_id, events, check_total_cents=self.check_total_cents)

    def filter_by_source(self, source: Any) -> "Timeline":
        wanted = getattr(source, "value", source)
        return self._derive(event for event in self._events if event.source == str(wanted).lower())

    def filter_by_category(self, category: Any) -> "Timeline":
        wanted = EventCategory(getattr(category, "value", category))
        return self._derive(event for event in self._events if event.category == wanted)

    def filter_by_severity(self, severity: Any) -> "Timeline":
        wanted = Severity(getattr(severity, "value", severity))
        return self._derive(event for event in self._events if event.severity == wanted)

    # -- money --------------------------------------------------------------

    @property
    def value_ledger(self) -> list[LedgerEntry]:
        """Chronological running totals; events without an amount are skipped."""
        ledger = []
        running = 0
        for event in self._events:
            if event.amount is None:
                continue
            running += event.amount
            ledger.append(LedgerEntry(event, running))
        return ledger

    @property
    def final_value(self) -> int:
        """Authoritative total when a source supplied one, else the ledger's last running total."""
        if self.check_total_cents is not None:
            return self.check_total_cents
        ledger = self.value_ledger
        return ledger[-1].running_total if ledger else 0

    @property
    def currency(self) -> str:
        for event in self._events:
            if event.amount is not None:
                return event.currency
        return DEFAULT_CURRENCY

    @property
    def formatted_final_value(self) -> str:
        return format_currency(self.final_value, self.currency)

    # -- export -------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready snapshot of the timeline and its derived views."""
        return {
            "check_id": self.check_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration": self.duration,
            "event_count": self.count,
            "error_count": self.error_count,
            "sources": self.sources,
            "severity_counts": self.severity_counts,
            "currency": self.currency,
            "check_total_cents": self.check_total_cents,
            "final_value": self.final_value,
            "formatted_final_value": self.formatted_final_value,
            "value_ledger": [
                {"event_id": entry.event.id, "amount": entry.event.amount, "running_total": entry.running_total}
                for entry in self.value_ledger
            ],
            "events": [event.model_dump(mode="json") for event in self._events],
        }
