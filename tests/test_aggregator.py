"""Tests for the Aggregator."""

import io
import logging
import time

import pytest
from rich.console import Console

from check_timeline.aggregator import Aggregator
from check_timeline.timeline import Timeline


class StubSource:
    """In-memory source adapter."""

    def __init__(self, name, events=(), total=None, available=True, error=None, delay=0.0):
        self.source_name = name
        self.check_total_cents = total
        self._events = list(events)
        self._available = available
        self._error = error
        self._delay = delay
        self.fetch_calls = 0

    def available(self):
        return self._available

    def fetch(self):
        self.fetch_calls += 1
        if self._delay:
            time.sleep(self._delay)
        if self._error:
            raise self._error
        return list(self._events)


class MethodTotalSource(StubSource):
    """Source exposing its total as a method instead of an attribute."""

    def __init__(self, name, events=(), total=None):
        super().__init__(name, events)
        self._total = total
        del self.check_total_cents

    def check_total_cents(self):
        return self._total


@pytest.fixture
def quiet_console():
    """Console writing into a buffer."""
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def events(build_event):
    return [build_event(f"2024-03-15T12:00:0{i}Z") for i in range(3)]


@pytest.mark.parametrize("parallel", [False, True])
def test_failing_source_is_isolated(events, quiet_console, caplog, parallel):
    """Test one failing source never aborts the run."""
    sources = [StubSource("broken", error=RuntimeError("boom")), StubSource("ok", events)]

    with caplog.at_level(logging.WARNING):
        timeline = Aggregator("abc-123", sources, parallel=parallel, console=quiet_console).run()

    assert isinstance(timeline, Timeline)
    assert timeline.count == 3
    assert "broken: fetch failed: boom" in caplog.text


def test_unavailable_source_not_fetched(events, quiet_console, caplog):
    """Test unavailable sources are skipped with a warning."""
    offline = StubSource("offline", events, available=False)

    with caplog.at_level(logging.WARNING):
        timeline = Aggregator("abc-123", [offline], console=quiet_console).run()

    assert offline.fetch_calls == 0
    assert timeline.is_empty
    assert "offline: source not available" in caplog.text


@pytest.mark.parametrize("parallel", [False, True])
def test_first_non_null_total_wins(quiet_console, parallel):
    """Test totals are resolved in configured order."""
    sources = [StubSource("a", total=None), StubSource("b", total=800), StubSource("c", total=999)]
    timeline = Aggregator("abc-123", sources, parallel=parallel, console=quiet_console).run()
    assert timeline.check_total_cents == 800
    assert timeline.final_value == 800


def test_callable_total(quiet_console):
    """Test a total exposed as a method is called."""
    timeline = Aggregator("abc-123", [MethodTotalSource("m", total=500)], console=quiet_console).run()
    assert timeline.check_total_cents == 500


def test_no_total(events, quiet_console):
    """Test no source reporting a total leaves it unset."""
    timeline = Aggregator("abc-123", [StubSource("plain", events)], console=quiet_console).run()
    assert timeline.check_total_cents is None


def test_sequential_and_parallel_match(build_event, quiet_console):
    """Test both modes produce the same events and total."""
    sources = [
        StubSource("api", [build_event("2024-03-15T12:00:00Z"), build_event("2024-03-15T12:01:00Z")], total=1200),
        StubSource("file", [build_event("2024-03-15T12:00:30Z")], total=900),
        StubSource("raygun", error=ValueError("bad file")),
    ]

    sequential = Aggregator("abc-123", sources, parallel=False, console=quiet_console).run()
    parallel = Aggregator("abc-123", sources, parallel=True, console=quiet_console).run()

    assert sequential.count == parallel.count == 3
    assert sequential.check_total_cents == parallel.check_total_cents == 1200
    assert [e.id for e in sequential] == [e.id for e in parallel]


def test_parallel_keeps_per_source_slots(build_event, quiet_console):
    """Test results are merged by source position, not completion order."""
    slow = StubSource("slow", [build_event("2024-03-15T12:00:00Z", title="slow")], delay=0.2)
    fast = StubSource("fast", [build_event("2024-03-15T12:00:00Z", title="fast")])

    timeline = Aggregator("abc-123", [slow, fast], parallel=True, console=quiet_console).run()

    # Equal timestamps keep merge order, which follows source order
    assert [e.title for e in timeline] == ["slow", "fast"]


def test_progress_output(events):
    """Test progress lines name each source and the total."""
    buffer = io.StringIO()
    sources = [StubSource("alpha", events), StubSource("empty")]

    Aggregator("abc-123", sources, console=Console(file=buffer, width=200)).run()
    output = buffer.getvalue()

    assert "Fetching timeline for check: abc-123" in output
    assert "Sources configured: 2" in output
    assert "→ Fetching from alpha..." in output
    assert "✓ alpha: 3 event(s)" in output
    assert "✗ empty: no events returned" in output
    assert "Total events collected: 3" in output


def test_quiet_silences_progress_but_not_warnings(caplog):
    """Test quiet mode still logs failures."""
    buffer = io.StringIO()
    sources = [StubSource("broken", error=RuntimeError("boom"))]

    with caplog.at_level(logging.WARNING):
        Aggregator("abc-123", sources, console=Console(file=buffer)).run(quiet=True)

    assert buffer.getvalue() == ""
    assert "fetch failed" in caplog.text


def test_check_id_taken_from_source(events, quiet_console):
    """Test a source that learned the check id supplies it."""
    source = StubSource("file", events)
    source.check_id = "from-document"
    timeline = Aggregator(None, [source], console=quiet_console).run()
    assert timeline.check_id == "from-document"
