"""Runs event sources and merges their output into a Timeline."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from typing import Optional, Sequence

from rich.console import Console
from rich.markup import escape

from .models.event import Event
from .sources.base import SourceAdapter
from .timeline import Timeline

logger = logging.getLogger(__name__)


def _source_label(source: SourceAdapter) -> str:
    return getattr(source, "source_name", None) or type(source).__name__


def reported_total(source: SourceAdapter) -> Optional[int]:
    """The source's authoritative check total, if it exposes one."""
    total = getattr(source, "check_total_cents", None)
    if callable(total):
        total = total()
    return total


class Aggregator:
    """Fetches events from every configured source for one check.

    A source that is unavailable contributes nothing and ``fetch`` is never
    called on it. A source whose ``fetch`` raises is logged and contributes
    nothing; it never aborts the run.

    In parallel mode each source runs on its own worker thread. Results are
    kept in per-source slots so the merged events and the authoritative total
    match a sequential run over the same sources.

    Args:
        check_id: Check being reconstructed
        sources: Source adapters, in priority order for the authoritative total
        parallel: Fetch sources concurrently
        console: Progress output; defaults to stdout
    """

    def __init__(
        self,
        check_id: Optional[str],
        sources: Sequence[SourceAdapter] = (),
        parallel: bool = False,
        console: Optional[Console] = None,
    ):
        self.check_id = check_id
        self.sources = list(sources)
        self.parallel = parallel
        self.console = console or Console()
        self._quiet = False

    def run(self, quiet: bool = False) -> Timeline:
        """Fetch from all sources and build the merged Timeline.

        Args:
            quiet: Suppress progress output. Warnings still go to the log.
        """
        self._quiet = quiet
        self._progress(f"Fetching timeline for check: {self.check_id}")
        self._progress(f"Sources configured: {len(self.sources)}")

        if self.parallel and len(self.sources) > 1:
            results = self._fetch_parallel()
        else:
            results = self._fetch_sequential()

        all_events = [event for events in results for event in events]
        check_total_cents = self._resolve_total()

        self._progress("")
        self._progress(f"Total events collected: {len(all_events)}")

        return Timeline(self._resolve_check_id(), all_events, check_total_cents=check_total_cents)

    def _fetch_sequential(self) -> list[list[Event]]:
        return [self._fetch_source(source) for source in self.sources]

    def _fetch_parallel(self) -> list[list[Event]]:
        lock = threading.Lock()
        results: list[list[Event]] = [[] for _ in self.sources]

        with ThreadPoolExecutor(max_workers=len(self.sources)) as executor:
            futures = {
                executor.submit(self._fetch_source, source, lock): index
                for index, source in enumerate(self.sources)
            }
            for future, index in futures.items():
                results[index] = future.result()

        return results

    def _fetch_source(self, source: SourceAdapter, lock: Optional[threading.Lock] = None) -> list[Event]:
        label = _source_label(source)
        guard = lock or nullcontext()

        with guard:
            self._progress(f"  → Fetching from {escape(label)}...")

        start = time.monotonic()
        events = self._safe_fetch(source, label)
        elapsed_ms = round((time.monotonic() - start) * 1000)

        with guard:
            if events:
                self._progress(f"    [green]✓[/green] {escape(label)}: {len(events)} event(s) ({elapsed_ms}ms)")
            else:
                self._progress(f"    [red]✗[/red] {escape(label)}: no events returned ({elapsed_ms}ms)")

        return events

    def _safe_fetch(self, source: SourceAdapter, label: str) -> list[Event]:
        try:
            if not source.available():
                logger.warning(f"{label}: source not available, skipping")
                return []
            return list(source.fetch() or [])
        except Exception as e:
            logger.warning(f"{label}: fetch failed: {e}", exc_info=True)
            return []

    def _resolve_total(self) -> Optional[int]:
        # First non-null total in configured order wins
        for source in self.sources:
            try:
                total = reported_total(source)
            except Exception as e:
                logger.warning(f"{_source_label(source)}: could not read check total: {e}")
                continue
            if total is not None:
                return total
        return None

    def _resolve_check_id(self) -> Optional[str]:
        # A file source can learn the id from the document it read
        if self.check_id:
            return self.check_id
        for source in self.sources:
            source_check_id = getattr(source, "check_id", None)
            if source_check_id:
                return source_check_id
        return None

    def _progress(self, message: str) -> None:
        if self._quiet:
            return
        self.console.print(message, highlight=False)
