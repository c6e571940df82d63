"""Interpretation of audit-trail (PaperTrail version) diffs.

A version record carries ``object_changes``: a mapping of field name to a
``[before, after]`` pair. Exactly one rule from ``VERSION_RULES`` names the
record; rules are evaluated in order and the first match wins. Whatever the
title does not already say is listed field by field in the description.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from ..currency import format_currency
from ..models.event import Severity

MONETARY_FIELDS = frozenset(
    {"amount_due", "subtotal", "gratuities_cents", "line_items_tax_cents", "extra_tax_cents"}
)
ARRAY_FIELDS = frozenset({"line_items", "discounts", "service_charges", "other_payments", "vat_items"})
TIMESTAMP_FIELDS = frozenset({"created_at", "updated_at", "paid_at"})
SKIP_ALWAYS = frozenset(
    {"id", "item_id", "simphony_id", "auto_service_charge_percentage", "micros_workstation_name"}
)

MAX_VALUE_LENGTH = 60
BLANK = "—"

Changes = dict[str, Any]


@dataclass(frozen=True)
class VersionDescription:
    """Human-readable interpretation of one version record."""

    title: str
    description: str
    severity: Severity = Severity.INFO


@dataclass(frozen=True)
class VersionRule:
    """One entry of the priority table: when ``matches``, ``describe`` names the record."""

    name: str
    matches: Callable[[str, Changes], bool]
    describe: Callable[[Changes, str], VersionDescription]


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def split_change(change: Any) -> tuple[Any, Any]:
    """Return (before, after) for a raw change value."""
    if isinstance(change, (list, tuple)):
        if len(change) >= 2:
            return change[0], change[1]
        if len(change) == 1:
            return change[0], None
        return None, None
    return change, None


def extract_before(changes: Changes, field: str) -> Any:
    return split_change(changes.get(field))[0]


def extract_after(changes: Changes, field: str) -> Any:
    value = changes.get(field)
    if isinstance(value, (list, tuple)):
        return value[-1] if value else None
    return value


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _cents(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def format_value(value: Any) -> str:
    """Render a raw change value: blank as an em-dash, long strings truncated."""
    if value is None or str(value).strip() == "":
        return BLANK
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False)
    else:
        text = str(value)
    if len(text) > MAX_VALUE_LENGTH:
        return f"{text[:MAX_VALUE_LENGTH - 3]}…"
    return text


def field_label(field: str) -> str:
    """'amount_due' -> 'Amount Due'"""
    return " ".join(word.capitalize() for word in field.replace("_", " ").split())


def _money(value: Any, currency: str) -> str:
    return format_currency(_cents(value), currency)


def _item_names(items: Iterable[Any], default: str) -> list[str]:
    names = []
    for item in items:
        if isinstance(item, dict):
            names.append(str(item.get("name") or item.get("type") or default))
        else:
            names.append(str(item))
    return names


# ---------------------------------------------------------------------------
# Description builder
# ---------------------------------------------------------------------------


def _describe_field(field: str, change: Any, currency: str) -> Optional[str]:
    before, after = split_change(change)
    label = field_label(field)

    if field in MONETARY_FIELDS:
        return f"{label}: {_money(before, currency)} → {_money(after, currency)}"

    if field in ARRAY_FIELDS:
        before_count = len(_as_list(before))
        after_count = len(_as_list(after))
        if before_count == after_count and before == after:
            return None
        return f"{label}: {before_count} item(s) → {after_count} item(s)"

    if field in TIMESTAMP_FIELDS:
        if before == after:
            return None
        return f"{label}: {after if after is not None else BLANK}"

    if before is None and after is not None:
        return f"{label}: set to {format_value(after)}"

    if before is not None and after is None:
        return f"{label}: cleared"

    if str(before) == str(after):
        return None
    return f"{label}: {format_value(before)} → {format_value(after)}"


def describe_changes(changes: Changes, currency: str, skip: Iterable[str] = ()) -> str:
    """Newline-joined, field-by-field summary of a change set.

    Args:
        changes: field -> [before, after]
        currency: ISO code for monetary fields
        skip: Fields already named in the title
    """
    skip_set = set(skip) | SKIP_ALWAYS
    lines = []
    for field, change in changes.items():
        if field in skip_set:
            continue
        line = _describe_field(field, change, currency)
        if line:
            lines.append(line)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Rules, in priority order
# ---------------------------------------------------------------------------


def _changed(field: str) -> Callable[[str, Changes], bool]:
    def matches(event: str, changes: Changes) -> bool:
        return changes.get(field) is not None

    return matches


def _describe_create(changes: Changes, currency: str) -> VersionDescription:
    check_number = extract_after(changes, "check_number")
    status = extract_after(changes, "status")
    table_id = extract_after(changes, "table_id")
    covers = extract_after(changes, "covers")

    title = f"Check #{check_number} Created" if check_number is not None else "Check Created"

    parts = []
    if status:
        parts.append(f"Status: {str(status).capitalize()}")
    if table_id is not None and str(table_id) != "0":
        parts.append(f"Table: {table_id}")
    if covers is not None:
        parts.append(f"Covers: {covers}")

    return VersionDescription(title=title, description=" · ".join(parts))


def _describe_status(changes: Changes, currency: str) -> VersionDescription:
    before, after = split_change(changes["status"])
    severity = Severity.WARNING if str(after) == "closed" else Severity.INFO
    return VersionDescription(
        title=f"Status: {format_value(before)} → {format_value(after)}",
        description=describe_changes(changes, currency, skip=["status"]),
        severity=severity,
    )


def _settled(event: str, changes: Changes) -> bool:
    return changes.get("paid_at") is not None and extract_after(changes, "paid_at") is not None


def _describe_settlement(changes: Changes, currency: str) -> VersionDescription:
    title = "Check Settled"
    amount_before = extract_before(changes, "amount_due")
    amount_after = extract_after(changes, "amount_due")
    if amount_before is not None and amount_after is not None:
        title += f" ({_money(amount_before, currency)} → {_money(amount_after, currency)})"
    return VersionDescription(
        title=title,
        description=describe_changes(changes, currency, skip=["paid_at", "amount_due"]),
    )


def _describe_amount_due(changes: Changes, currency: str) -> VersionDescription:
    before, after = split_change(changes["amount_due"])
    return VersionDescription(
        title=f"Amount Due: {_money(before, currency)} → {_money(after, currency)}",
        description=describe_changes(changes, currency, skip=["amount_due"]),
    )


def _array_delta_title(
    changes: Changes, field: str, singular: str, plural: str, added_verb: str = "Applied"
) -> str:
    before, after = split_change(changes[field])
    before_items = _as_list(before)
    after_items = _as_list(after)

    if len(after_items) > len(before_items):
        added = _item_names([i for i in after_items if i not in before_items], singular)
        return f"{singular} {added_verb}: {', '.join(added)}" if added else f"{singular} {added_verb}"
    if len(after_items) < len(before_items):
        removed = _item_names([i for i in before_items if i not in after_items], singular)
        return f"{singular} Removed: {', '.join(removed)}" if removed else f"{singular} Removed"
    return f"{plural} Updated"


def _describe_discounts(changes: Changes, currency: str) -> VersionDescription:
    return VersionDescription(
        title=_array_delta_title(changes, "discounts", "Discount", "Discounts"),
        description=describe_changes(changes, currency, skip=["discounts"]),
    )


def _describe_service_charges(changes: Changes, currency: str) -> VersionDescription:
    return VersionDescription(
        title=_array_delta_title(
            changes, "service_charges", "Service Charge", "Service Charges", added_verb="Added"
        ),
        description=describe_changes(changes, currency, skip=["service_charges"]),
    )


def _describe_other_payments(changes: Changes, currency: str) -> VersionDescription:
    after_items = _as_list(extract_after(changes, "other_payments"))
    types: list[str] = []
    for item in after_items:
        label = str(item.get("type") or "Payment") if isinstance(item, dict) else str(item)
        if label not in types:
            types.append(label)
    title = f"Other Payment: {', '.join(types)}" if types else "Other Payments Updated"
    return VersionDescription(
        title=title,
        description=describe_changes(changes, currency, skip=["other_payments"]),
    )


def _describe_transition(field: str, label: str) -> Callable[[Changes, str], VersionDescription]:
    def describe(changes: Changes, currency: str) -> VersionDescription:
        before, after = split_change(changes[field])
        return VersionDescription(
            title=f"{label}: {format_value(before)} → {format_value(after)}",
            description=describe_changes(changes, currency, skip=[field]),
        )

    return describe


def _describe_fallback(changes: Changes, currency: str) -> VersionDescription:
    changed_fields = [field for field in changes if field not in SKIP_ALWAYS]
    title = f"Updated: {', '.join(changed_fields)}" if changed_fields else "Check Updated"
    return VersionDescription(title=title, description=describe_changes(changes, currency))


VERSION_RULES: tuple[VersionRule, ...] = (
    VersionRule("create", lambda event, changes: event == "create", _describe_create),
    VersionRule("status", _changed("status"), _describe_status),
    VersionRule("settlement", _settled, _describe_settlement),
    VersionRule("amount_due", _changed("amount_due"), _describe_amount_due),
    VersionRule("discounts", _changed("discounts"), _describe_discounts),
    VersionRule("service_charges", _changed("service_charges"), _describe_service_charges),
    VersionRule("other_payments", _changed("other_payments"), _describe_other_payments),
    VersionRule("currency", _changed("currency"), _describe_transition("currency", "Currency Set")),
    VersionRule("reason", _changed("reason"), _describe_transition("reason", "Reason")),
    VersionRule("fallback", lambda event, changes: True, _describe_fallback),
)


def describe_version(event: str, changes: Changes, currency: str) -> VersionDescription:
    """Interpret one version record using the first matching rule."""
    for rule in VERSION_RULES:
        if rule.matches(event, changes):
            return rule.describe(changes, currency)
    # Unreachable: the fallback rule always matches
    return _describe_fallback(changes, currency)
