"""Tests for Timeline."""

import json

import pytest

from check_timeline.models.event import EventCategory, EventSource, Severity
from check_timeline.timeline import Timeline, format_duration


@pytest.fixture
def mixed_timeline(build_event):
    """Timeline over check, payment and exception events, supplied out of order."""
    events = [
        build_event("2024-03-15T12:10:00Z", source=EventSource.RAYGUN, category="exception",
                    event_type="exception.raised", severity="error"),
        build_event("2024-03-15T12:00:00Z", amount=1200, event_type="check.created"),
        build_event("2024-03-15T12:02:00Z", amount=-200, event_type="check.discount_applied"),
        build_event("2024-03-15T12:03:00Z", event_type="check.updated"),
        build_event("2024-03-15T12:04:00Z", amount=150, event_type="check.service_charge_added"),
        build_event("2024-03-15T12:05:00Z", category="payment", event_type="payment.failed", severity="critical"),
        build_event("2024-03-15T12:06:00Z", source=EventSource.PAPER_TRAIL, category="version",
                    event_type="version.update", severity="warning"),
    ]
    return Timeline("abc-123", events)


class TestOrdering:
    """Events are sorted by timestamp on construction."""

    def test_sub_second_ordering(self, build_event):
        """Test .100Z sorts before .900Z regardless of insertion order."""
        late = build_event("2024-03-15T12:00:00.900Z", title="late")
        early = build_event("2024-03-15T12:00:00.100Z", title="early")
        timeline = Timeline("abc-123", [late, early])
        assert [e.title for e in timeline] == ["early", "late"]

    def test_equal_timestamps_keep_insertion_order(self, build_event):
        """Test the sort is stable for ties."""
        events = [build_event("2024-03-15T12:00:00Z", title=name) for name in ("b", "a", "c")]
        assert [e.title for e in Timeline("abc-123", events)] == ["b", "a", "c"]

    def test_construction_copies_input(self, build_event):
        """Test later changes to the input list do not affect the timeline."""
        events = [build_event()]
        timeline = Timeline("abc-123", events)
        events.append(build_event())
        assert len(timeline) == 1


class TestTimeSpan:
    """started_at, ended_at and duration"""

    def test_empty(self):
        """Test an empty timeline has no span."""
        timeline = Timeline("abc-123", [])
        assert timeline.is_empty
        assert timeline.started_at is None
        assert timeline.ended_at is None
        assert timeline.duration == "n/a"

    def test_single_event(self, build_event):
        """Test one event lasts less than a second."""
        assert Timeline("abc-123", [build_event()]).duration == "< 1s"

    @pytest.mark.parametrize(
        "end,expected",
        [
            ("2024-03-15T12:00:47Z", "47s"),
            ("2024-03-15T12:14:33Z", "14m 33s"),
            ("2024-03-15T13:02:03Z", "1h 2m 3s"),
        ],
    )
    def test_duration_formats(self, build_event, end, expected):
        """Test seconds, minutes and hours formatting."""
        timeline = Timeline("abc-123", [build_event("2024-03-15T12:00:00Z"), build_event(end)])
        assert timeline.duration == expected

    def test_format_duration_under_a_second(self):
        assert format_duration(0.5) == "< 1s"


class TestValue:
    """value_ledger and final_value"""

    def test_ledger_skips_events_without_amount(self, mixed_timeline):
        """Test the ledger only steps on amount-bearing events."""
        ledger = mixed_timeline.value_ledger
        assert [entry.running_total for entry in ledger] == [1200, 1000, 1150]
        assert [entry.event.event_type for entry in ledger] == [
            "check.created",
            "check.discount_applied",
            "check.service_charge_added",
        ]

    def test_final_value_from_ledger(self, mixed_timeline):
        """Test the final value falls back to the ledger total."""
        assert mixed_timeline.final_value == 1150
        assert mixed_timeline.formatted_final_value == "£11.50"

    def test_authoritative_total_wins(self, mixed_timeline):
        """Test a source-supplied total overrides the ledger."""
        timeline = Timeline("abc-123", mixed_timeline.events, check_total_cents=800)
        assert timeline.final_value == 800
        assert timeline.formatted_final_value == "£8.00"

    def test_empty_final_value(self):
        """Test an empty timeline is worth zero."""
        assert Timeline("abc-123", []).final_value == 0

    def test_currency_from_first_amount(self, build_event):
        """Test currency comes from the first amount-bearing event."""
        events = [build_event("2024-03-15T12:00:00Z", currency="EUR"), build_event("2024-03-15T12:01:00Z", amount=5, currency="USD")]
        timeline = Timeline("abc-123", events)
        assert timeline.currency == "USD"
        assert Timeline("abc-123", []).currency == "GBP"


class TestPartitions:
    """Grouping, counts and filters."""

    def test_sources_in_order_of_appearance(self, mixed_timeline):
        """Test distinct sources keep first-appearance order."""
        assert mixed_timeline.sources == ["checks_api", "paper_trail", "raygun"]

    def test_by_source_preserves_order(self, mixed_timeline):
        """Test partitions keep chronological order."""
        checks = mixed_timeline.by_source["checks_api"]
        assert len(checks) == 5
        assert checks == sorted(checks, key=lambda e: e.timestamp)

    def test_by_category(self, mixed_timeline):
        """Test grouping by category."""
        groups = mixed_timeline.by_category
        assert len(groups[EventCategory.CHECK]) == 4
        assert len(groups[EventCategory.PAYMENT]) == 1
        assert mixed_timeline.categories[0] == EventCategory.CHECK

    def test_severity_counts_zero_filled(self, mixed_timeline):
        """Test all severities are present."""
        assert mixed_timeline.severity_counts == {"info": 4, "warning": 1, "error": 1, "critical": 1}
        assert Timeline("abc-123", []).severity_counts == {"info": 0, "warning": 0, "error": 0, "critical": 0}

    def test_errors(self, mixed_timeline):
        """Test the error subset holds error and critical events."""
        errors = mixed_timeline.errors()
        assert isinstance(errors, Timeline)
        assert errors.count == 2
        assert mixed_timeline.error_count == 2

    def test_filters_return_new_timelines(self, mixed_timeline):
        """Test filters keep check id and total and leave the receiver untouched."""
        source_total = Timeline("abc-123", mixed_timeline.events, check_total_cents=800)
        raygun = source_total.filter_by_source(EventSource.RAYGUN)

        assert raygun.count == 1
        assert raygun.check_id == "abc-123"
        assert raygun.final_value == 800
        assert source_total.count == 7

    def test_filter_by_category_and_severity(self, mixed_timeline):
        """Test filters accept enum members or strings."""
        assert mixed_timeline.filter_by_category("payment").count == 1
        assert mixed_timeline.filter_by_category(EventCategory.CHECK).count == 4
        assert mixed_timeline.filter_by_severity(Severity.WARNING).count == 1
        assert mixed_timeline.filter_by_source("checks_api").count == 5


def test_to_dict_is_json_serializable(mixed_timeline):
    """Test the export round-trips through json."""
    data = json.loads(json.dumps(mixed_timeline.to_dict()))
    assert data["check_id"] == "abc-123"
    assert data["event_count"] == 7
    assert data["final_value"] == 1150
    assert data["value_ledger"][-1]["running_total"] == 1150
    assert data["events"][0]["event_type"] == "check.created"
