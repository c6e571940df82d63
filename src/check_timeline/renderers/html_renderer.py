"""Self-contained HTML rendering of a Timeline.

The page has no external assets: CSS and the filter script are inlined so
the file can be attached to a ticket or opened offline.
"""

import html
import json
import logging
import re
import webbrowser
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import Any, Optional

from ..currency import currency_symbol, format_currency
from ..models.event import Event, EventCategory, Severity
from ..timeline import Timeline

logger = logging.getLogger(__name__)

h = html.escape

SEVERITY_COLORS = {
    "info": {"bg": "#e8f4fd", "border": "#3b82f6", "text": "#1e40af", "label": "Info"},
    "warning": {"bg": "#fefce8", "border": "#f59e0b", "text": "#92400e", "label": "Warning"},
    "error": {"bg": "#fef2f2", "border": "#ef4444", "text": "#991b1b", "label": "Error"},
    "critical": {"bg": "#fdf4ff", "border": "#a855f7", "text": "#6b21a8", "label": "Critical"},
}

CATEGORY_META = {
    "check": {"icon": "🧾", "label": "Check", "color": "#0ea5e9"},
    "payment": {"icon": "💳", "label": "Payment", "color": "#10b981"},
    "exception": {"icon": "🐛", "label": "Exception", "color": "#f43f5e"},
    "version": {"icon": "📋", "label": "Version", "color": "#8b5cf6"},
    "unknown": {"icon": "❓", "label": "Unknown", "color": "#94a3b8"},
}

SOURCE_META = {
    "checks_api": {"icon": "🔌", "label": "Checks API"},
    "raygun": {"icon": "🐛", "label": "Raygun"},
    "paper_trail": {"icon": "📋", "label": "PaperTrail"},
    "unknown": {"icon": "❓", "label": "Unknown"},
}


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def _millis(dt: datetime) -> int:
    return dt.microsecond // 1000


def format_timestamp(dt: Optional[datetime]) -> str:
    """'15 Mar 2024 12:00:00.123 UTC'; milliseconds only when non-zero."""
    if dt is None:
        return "—"
    text = dt.strftime("%d %b %Y %H:%M:%S")
    if _millis(dt):
        text += f".{_millis(dt):03d}"
    return f"{text} UTC"


def format_time_precise(dt: Optional[datetime]) -> str:
    """'12:00:00.123', or '12:00:00' when there are no milliseconds."""
    if dt is None:
        return "—"
    text = dt.strftime("%H:%M:%S")
    if _millis(dt):
        text += f".{_millis(dt):03d}"
    return text


def format_date(dt: Optional[datetime]) -> str:
    if dt is None:
        return "—"
    return f"{dt:%A}, {dt.day} {dt:%B %Y}"


def relative_offset(event_ts: datetime, base_ts: Optional[datetime]) -> str:
    """Offset from the first event, e.g. '+1m 5s'."""
    if base_ts is None:
        return "0s"
    seconds = int((event_ts - base_ts).total_seconds())
    if seconds == 0:
        return "0s"

    sign = "-" if seconds < 0 else "+"
    seconds = abs(seconds)
    parts = []
    if seconds >= 3600:
        parts.append(f"{seconds // 3600}h")
    if seconds >= 60:
        parts.append(f"{(seconds % 3600) // 60}m")
    parts.append(f"{seconds % 60}s")
    return sign + " ".join(parts)


def _nl2br(text: Optional[str]) -> str:
    return h(text or "").replace("\n", "<br>")


def _meta_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class HtmlRenderer:
    """Renders a Timeline as a single HTML page.

    Usage:
        renderer = HtmlRenderer(timeline)
        path = renderer.render(output_path=Path("/tmp/my_timeline.html"))
    """

    def __init__(self, timeline: Timeline):
        self.timeline = timeline

    def default_output_path(self) -> Path:
        safe_id = re.sub(r"[^a-zA-Z0-9\-_]", "_", str(self.timeline.check_id or "unknown"))
        return Path.cwd() / f"timeline_{safe_id}.html"

    def render(self, output_path: Optional[Path] = None, open_browser: bool = True) -> Path:
        """Write the page to disk, creating parent directories.

        Args:
            output_path: Destination; defaults to ./timeline_<check id>.html
            open_browser: Open the written file in the default browser

        Returns:
            Path to the written file
        """
        path = Path(output_path) if output_path else self.default_output_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render_html(), encoding="utf-8")
        logger.info(f"Timeline written to {path}")

        if open_browser:
            self._open_in_browser(path)
        return path

    def _open_in_browser(self, path: Path) -> None:
        try:
            webbrowser.open(path.resolve().as_uri())
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")

    def stats(self) -> dict[str, Any]:
        timeline = self.timeline
        return {
            "total": timeline.count,
            "errors": timeline.error_count,
            "sources": len(timeline.sources),
            "duration": timeline.duration,
            "by_source": {source: len(events) for source, events in timeline.by_source.items()},
            "by_category": {category.value: len(events) for category, events in timeline.by_category.items()},
            "by_severity": timeline.severity_counts,
            "final_value": timeline.formatted_final_value,
        }

    def render_html(self) -> str:
        timeline = self.timeline
        stats = self.stats()
        generated_at = datetime.now(timezone.utc)

        return _HTML_TEMPLATE.safe_substitute(
            title=h(f"Check Timeline: {timeline.check_id or 'unknown'}"),
            css=_CSS,
            check_id=h(str(timeline.check_id or "unknown")),
            started_at=h(format_timestamp(timeline.started_at)),
            ended_at=h(format_timestamp(timeline.ended_at)),
            event_count=stats["total"],
            error_count=stats["errors"],
            generated_at=h(format_timestamp(generated_at)),
            sidebar=self._render_sidebar(stats),
            content=self._render_events(),
            ledger=self._render_ledger(),
            script=_SCRIPT,
        )

    # -- sections -----------------------------------------------------------

    def _render_sidebar(self, stats: dict[str, Any]) -> str:
        parts = [
            '<section class="value-panel">',
            "<h2>Check Value</h2>",
            f'<div class="value-amount">{h(stats["final_value"])}</div>',
            f'<div class="value-duration">Duration: {h(stats["duration"])}</div>',
            "</section>",
            '<section class="panel"><h3>Severity</h3>',
        ]
        for severity in Severity:
            meta = SEVERITY_COLORS[severity.value]
            parts.append(
                f'<div class="severity-row active" data-severity="{severity.value}" '
                f"onclick=\"toggleSeverityFilter('{severity.value}', this)\">"
                f'<span class="dot" style="background:{meta["border"]}"></span>'
                f'{meta["label"]} <span class="count">{stats["by_severity"][severity.value]}</span></div>'
            )
        parts.append("</section>")

        parts.append('<section class="panel"><h3>Sources</h3>')
        for source, count in stats["by_source"].items():
            meta = SOURCE_META.get(source, SOURCE_META["unknown"])
            parts.append(
                f'<div class="source-row active" data-source="{h(source)}" '
                f"onclick=\"toggleSourceFilter('{h(source)}', this)\">"
                f'{meta["icon"]} {h(meta["label"])} <span class="count">{count}</span></div>'
            )
        parts.append("</section>")

        parts.append('<section class="panel"><h3>Categories</h3>')
        for category in EventCategory:
            meta = CATEGORY_META[category.value]
            count = stats["by_category"].get(category.value, 0)
            parts.append(
                f'<label class="category-filter" style="border-color:{meta["color"]}">'
                f'<input type="checkbox" checked data-category="{category.value}" '
                f"onchange=\"toggleCategoryFilter('{category.value}', this.checked)\">"
                f'{meta["icon"]} {meta["label"]} <span class="count">{count}</span></label>'
            )
        parts.append("</section>")

        parts.append(
            '<section class="panel"><input id="search" type="search" '
            'placeholder="Search events..." oninput="applyFilters()"></section>'
        )
        return "\n".join(parts)

    def _render_events(self) -> str:
        timeline = self.timeline
        if timeline.is_empty:
            return (
                '<div class="empty-state"><p>No events found for this check.</p>'
                "<p>Check that at least one source is configured and returned data.</p></div>"
            )

        groups: dict[str, list[Event]] = {}
        for event in timeline:
            groups.setdefault(event.timestamp.date().isoformat(), []).append(event)

        parts = ['<div class="timeline">']
        for day, events in groups.items():
            parts.append(f'<div class="date-group" data-date="{day}">')
            parts.append(f'<h2 class="date-heading">{h(format_date(events[0].timestamp))}</h2>')
            parts.extend(self._render_event_card(event) for event in events)
            parts.append("</div>")
        parts.append("</div>")
        return "\n".join(parts)

    def _render_event_card(self, event: Event) -> str:
        colors = SEVERITY_COLORS.get(event.severity.value, SEVERITY_COLORS["info"])
        category = CATEGORY_META.get(event.category.value, CATEGORY_META["unknown"])
        searchable = " ".join(
            part for part in (event.title, event.event_type, event.description or "") if part
        ).lower()

        parts = [
            f'<article class="event-card" data-category="{event.category.value}" '
            f'data-severity="{event.severity.value}" data-source="{h(event.source)}" '
            f'data-searchable="{h(searchable)}" '
            f'style="border-left-color:{colors["border"]};background:{colors["bg"]}">',
            '<header class="event-header">',
            f'<span class="event-time" title="{h(format_timestamp(event.timestamp))}">'
            f"{h(format_time_precise(event.timestamp))}</span>",
            f'<span class="event-offset">{relative_offset(event.timestamp, self.timeline.started_at)}</span>',
            f'<span class="event-icon">{event.source_icon} {category["icon"]}</span>',
            f'<span class="event-title">{h(event.title)}</span>',
            f'<span class="badge" style="background:{colors["border"]}">{colors["label"]}</span>',
        ]
        if event.formatted_amount is not None:
            sign_class = "negative" if event.amount < 0 else "positive"
            parts.append(f'<span class="event-amount {sign_class}">{h(event.formatted_amount)}</span>')
        parts.append("</header>")
        parts.append(f'<div class="event-type">{h(event.event_type)}</div>')

        if event.description:
            parts.append(f'<div class="event-description">{_nl2br(event.description)}</div>')

        if event.metadata:
            parts.append('<details class="metadata"><summary>Metadata</summary><table>')
            for key, value in event.metadata.items():
                value_class = "metadata-value metadata-value-timestamp" if str(key).endswith("_at") else "metadata-value"
                parts.append(
                    f'<tr><td class="metadata-key">{h(str(key))}</td>'
                    f'<td class="{value_class}">{h(_meta_value(value))}</td></tr>'
                )
            parts.append("</table></details>")

        parts.append("</article>")
        return "\n".join(parts)

    def _render_ledger(self) -> str:
        ledger = self.timeline.value_ledger
        if not ledger:
            return ""

        parts = [
            '<section class="ledger"><h2>Value Ledger</h2>',
            "<table><tr><th>Time</th><th>Event</th><th>Amount</th><th>Running Total</th></tr>",
        ]
        for entry in ledger:
            event = entry.event
            parts.append(
                f"<tr><td>{h(format_timestamp(event.timestamp))}</td>"
                f"<td>{h(event.title)}</td>"
                f'<td class="num">{h(format_currency(event.amount, event.currency))}</td>'
                f'<td class="num">{h(format_currency(entry.running_total, event.currency))}</td></tr>'
            )
        parts.append("</table>")
        parts.append(
            f'<p class="meta">Final value: {h(self.timeline.formatted_final_value)} '
            f"({h(currency_symbol(self.timeline.currency).strip())} {h(self.timeline.currency)})</p>"
        )
        parts.append("</section>")
        return "\n".join(parts)


_HTML_TEMPLATE = Template("""\
<!DOCTYPE html>
<html lang="en"><head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>$title</title>
<style>$css</style>
</head><body>
<header class="page-header">
<h1>Check Timeline</h1>
<div class="check-id">$check_id</div>
<div class="meta">$started_at &rarr; $ended_at | Events: $event_count | Errors: $error_count | Generated: $generated_at</div>
</header>
<div class="layout">
<aside class="sidebar">
$sidebar
</aside>
<main>
$content
$ledger
</main>
</div>
<script>$script</script>
</body></html>""")

_CSS = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
       margin: 0; background: #f5f5f5; color: #333; }
.page-header { background: #1e293b; color: #fff; padding: 20px 30px; }
.page-header h1 { margin: 0 0 4px 0; }
.check-id { font-family: monospace; font-size: 1.1em; }
.meta { color: #94a3b8; font-size: 0.9em; }
.layout { display: flex; gap: 20px; padding: 20px; }
.sidebar { width: 280px; flex-shrink: 0; }
main { flex: 1; min-width: 0; }
.panel, .value-panel { background: #fff; border-radius: 8px; padding: 12px 16px;
                       margin-bottom: 16px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
.value-amount { font-size: 2em; font-weight: 700; }
.severity-row, .source-row { cursor: pointer; padding: 4px 6px; border-radius: 4px; opacity: 0.4; }
.severity-row.active, .source-row.active { opacity: 1; }
.dot { display: inline-block; width: 10px; height: 10px; border-radius: 50%; margin-right: 6px; }
.count { float: right; color: #64748b; }
.category-filter { display: block; border-left: 3px solid; padding-left: 6px; margin: 4px 0; }
#search { width: 100%; padding: 6px; box-sizing: border-box; }
.date-heading { font-size: 1.1em; color: #475569; border-bottom: 1px solid #cbd5e1; }
.event-card { border-left: 4px solid; border-radius: 6px; padding: 10px 14px; margin: 10px 0; }
.event-card.hidden { display: none; }
.event-header { display: flex; gap: 10px; align-items: baseline; flex-wrap: wrap; }
.event-time { font-family: monospace; }
.event-offset { color: #64748b; font-size: 0.85em; }
.event-title { font-weight: 600; flex: 1; }
.badge { color: #fff; border-radius: 10px; padding: 1px 8px; font-size: 0.8em; }
.event-amount.negative { color: #b91c1c; }
.event-amount.positive { color: #047857; }
.event-type { font-family: monospace; color: #64748b; font-size: 0.85em; }
.event-description { margin-top: 6px; font-size: 0.9em; }
.metadata table, .ledger table { border-collapse: collapse; width: 100%; margin-top: 6px; }
.metadata td, .ledger td, .ledger th { padding: 4px 8px; border: 1px solid #e2e8f0; font-size: 0.85em; }
.metadata-key { font-family: monospace; color: #475569; }
.metadata-value-timestamp { font-family: monospace; color: #0369a1; }
.ledger { background: #fff; border-radius: 8px; padding: 12px 16px; margin-top: 20px; }
.ledger .meta { color: #475569; }
.num { text-align: right; font-family: monospace; }
.empty-state { text-align: center; padding: 60px; color: #64748b; background: #fff; border-radius: 8px; }
"""

_SCRIPT = """
const allCategories = Array.from(document.querySelectorAll('.category-filter input')).map(el => el.dataset.category);
const allSeverities = Array.from(document.querySelectorAll('.severity-row')).map(el => el.dataset.severity);
const allSources = Array.from(document.querySelectorAll('.source-row')).map(el => el.dataset.source);
const activeCategories = new Set(allCategories);
const activeSeverities = new Set(allSeverities);
const activeSources = new Set(allSources);

function toggleIn(set, value, on) {
  if (on) { set.add(value); } else { set.delete(value); }
}

function toggleCategoryFilter(category, checked) {
  toggleIn(activeCategories, category, checked);
  applyFilters();
}

function toggleSeverityFilter(severity, el) {
  const on = !activeSeverities.has(severity);
  toggleIn(activeSeverities, severity, on);
  el.classList.toggle('active', on);
  applyFilters();
}

function toggleSourceFilter(source, el) {
  const on = !activeSources.has(source);
  toggleIn(activeSources, source, on);
  el.classList.toggle('active', on);
  applyFilters();
}

function applyFilters() {
  const search = document.getElementById('search');
  const query = search ? search.value.trim().toLowerCase() : '';
  document.querySelectorAll('.event-card').forEach(card => {
    const matchesCategory = activeCategories.has(card.dataset.category);
    const matchesSeverity = activeSeverities.has(card.dataset.severity);
    const matchesSource = activeSources.has(card.dataset.source);
    const matchesSearch = !query || card.dataset.searchable.includes(query);
    card.classList.toggle('hidden', !(matchesCategory && matchesSeverity && matchesSource && matchesSearch));
  });
  document.querySelectorAll('.date-group').forEach(group => {
    const visible = group.querySelectorAll('.event-card:not(.hidden)').length > 0;
    group.style.display = visible ? '' : 'none';
  });
}
"""
