"""Translation of check, payment and version documents into Events.

Pure functions over already-parsed JSON (dicts/lists); no network or file
access. Shared by the live API source and the local file source.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

from ..currency import format_currency
from ..models.event import Event, EventCategory, EventSource, Severity
from .base import ParseContext
from .version_rules import describe_version

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "GBP"

# Resolution order for a payment's amount
PAYMENT_AMOUNT_KEYS = ("amount_cents", "total_cents", "cents", "amount")


def _to_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _compact(mapping: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


# ---------------------------------------------------------------------------
# Check documents
# ---------------------------------------------------------------------------


def parse_check_total_cents(doc: Any) -> Optional[int]:
    """Authoritative total from ``data.attributes.total_cents``, or None if absent."""
    attributes = _as_dict(_as_dict(_as_dict(doc).get("data")).get("attributes"))
    raw = attributes.get("total_cents")
    if raw is None:
        return None
    return _to_int(raw, default=None)


def parse_check_document(doc: dict[str, Any], ctx: ParseContext) -> list[Event]:
    """Parse a JSON:API check document into check events.

    Args:
        doc: Parsed document from GET /public/checks/:id (or a saved copy)
        ctx: Id/timestamp context of the calling source

    Returns:
        Events in policy order: created, updated, paid, line items, discounts,
        service charges. Each rule fires independently of the others.
    """
    data = _as_dict(doc.get("data"))
    attrs = _as_dict(data.get("attributes"))
    included = _as_list(doc.get("included"))

    venue = _find_included(included, "venues", attrs.get("location_code"))
    location = _find_included(included, "locations", _location_id(data))

    check_id = data.get("id")
    currency = attrs.get("currency") or DEFAULT_CURRENCY
    total_cents = _to_int(attrs.get("total_cents"))
    metadata = _check_metadata(data, attrs, venue, location)
    check_number = attrs.get("check_number")

    events: list[Event] = []

    created_at = attrs.get("created_at")
    updated_at = attrs.get("updated_at")
    paid_at = attrs.get("paid_at")

    if created_at:
        events.append(
            _check_event(
                ctx,
                id_parts=("check", "created", check_id),
                timestamp=created_at,
                event_type="check.created",
                title=f"Check #{check_number} Created",
                description=_check_description(attrs, venue, location, currency),
                amount=total_cents,
                currency=currency,
                metadata=metadata,
            )
        )

    # Only when the record was touched after creation
    if updated_at and updated_at != created_at:
        events.append(
            _check_event(
                ctx,
                id_parts=("check", "updated", check_id, updated_at),
                timestamp=updated_at,
                event_type="check.updated",
                title=f"Check #{check_number} Updated",
                description=(
                    f"Check updated. Status: {attrs.get('status')}. "
                    f"Total: {format_currency(total_cents, currency)}."
                ),
                amount=total_cents,
                currency=currency,
                metadata=metadata,
            )
        )

    if paid_at:
        events.append(
            _check_event(
                ctx,
                id_parts=("check", "paid", check_id),
                timestamp=paid_at,
                event_type="check.paid",
                title=f"Check #{check_number} Paid",
                description=f"Check fully settled. Total: {format_currency(total_cents, currency)}.",
                amount=total_cents,
                currency=currency,
                metadata=metadata,
            )
        )

    # Line items have no timestamps of their own: offset each by (index + 1)
    # seconds from created_at so they sort after the creation event in order.
    if created_at:
        base_ts = ctx.parse_timestamp(created_at)
        for idx, item in enumerate(_as_list(attrs.get("line_items"))):
            item = _as_dict(item)
            events.append(
                _check_event(
                    ctx,
                    id_parts=("line_item", check_id, item.get("name"), str(idx)),
                    timestamp=base_ts + timedelta(seconds=idx + 1),
                    event_type="check.line_item_added",
                    title=f"Line Item: {item.get('name')}",
                    description=_line_item_description(item, currency),
                    amount=_to_int(item.get("cents")),
                    currency=currency,
                    metadata=dict(item),
                )
            )

    for idx, discount in enumerate(_as_list(attrs.get("discounts"))):
        discount = _as_dict(discount)
        ref_ts = discount.get("created_at") or updated_at or created_at
        if not ref_ts:
            continue
        events.append(
            _check_event(
                ctx,
                id_parts=("discount", check_id, discount.get("id") or discount.get("name") or str(idx)),
                timestamp=ref_ts,
                event_type="check.discount_applied",
                title=f"Discount: {discount.get('name') or discount.get('code') or 'Discount'}",
                description=_discount_description(discount, currency),
                # Always a debit, whatever sign the source used
                amount=-abs(_discount_cents(discount)),
                currency=currency,
                metadata=dict(discount),
            )
        )

    for idx, charge in enumerate(_as_list(attrs.get("service_charges"))):
        charge = _as_dict(charge)
        ref_ts = charge.get("created_at") or updated_at or created_at
        if not ref_ts:
            continue
        charge_name = charge.get("name") or "Service Charge"
        charge_cents = abs(_to_int(charge.get("cents")))
        events.append(
            _check_event(
                ctx,
                id_parts=("service_charge", check_id, charge.get("id") or str(idx)),
                timestamp=ref_ts,
                event_type="check.service_charge_added",
                title=f"Service Charge: {charge_name}",
                description=f"{charge_name}: {format_currency(charge_cents, currency)}",
                amount=charge_cents,
                currency=currency,
                metadata=dict(charge),
            )
        )

    return events


def _check_event(
    ctx: ParseContext,
    *,
    id_parts: tuple,
    timestamp: Any,
    event_type: str,
    title: str,
    description: str,
    amount: Optional[int],
    currency: str,
    metadata: dict[str, Any],
) -> Event:
    return Event(
        id=ctx.event_id(*id_parts),
        timestamp=ctx.parse_timestamp(timestamp),
        source=EventSource.CHECKS_API,
        category=EventCategory.CHECK,
        event_type=event_type,
        title=title,
        description=description,
        severity=Severity.INFO,
        amount=amount,
        currency=currency,
        metadata=metadata,
    )


def _find_included(included: list, type_name: str, resource_id: Any) -> Optional[dict]:
    if resource_id is None:
        return None
    for resource in included:
        if isinstance(resource, dict) and resource.get("type") == type_name and str(resource.get("id")) == str(resource_id):
            return resource
    return None


def _location_id(data: dict) -> Any:
    return _as_dict(_as_dict(_as_dict(data.get("relationships")).get("location")).get("data")).get("id")


def _check_description(attrs: dict, venue: Optional[dict], location: Optional[dict], currency: str) -> str:
    venue_attrs = _as_dict(_as_dict(venue).get("attributes"))
    location_attrs = _as_dict(_as_dict(location).get("attributes"))

    parts = []
    venue_name = venue_attrs.get("name") or attrs.get("location_name")
    if venue_name:
        parts.append(f"{venue_name} ({attrs.get('location_code')})")
    if attrs.get("status"):
        parts.append(f"Status: {str(attrs['status']).capitalize()}")
    if attrs.get("table_id") is not None and str(attrs["table_id"]) != "0":
        parts.append(f"Table: {attrs['table_id']}")
    if attrs.get("covers") is not None:
        parts.append(f"Covers: {attrs['covers']}")
    if attrs.get("reason"):
        parts.append(f"Revenue centre: {attrs['reason']}")
    subtotal = attrs.get("subtotal") if attrs.get("subtotal") is not None else attrs.get("total_cents")
    parts.append(f"Subtotal: {format_currency(_to_int(subtotal, default=None), currency)}")
    if attrs.get("line_items_tax_cents") is not None:
        parts.append(f"Tax: {format_currency(_to_int(attrs['line_items_tax_cents']), currency)}")
    if attrs.get("total_cents") is not None:
        parts.append(f"Total: {format_currency(_to_int(attrs['total_cents']), currency)}")
    if location_attrs.get("service_charge_percentage") is not None:
        parts.append(f"Service charge: {location_attrs['service_charge_percentage']}%")
    return " · ".join(parts)


def _check_metadata(data: dict, attrs: dict, venue: Optional[dict], location: Optional[dict]) -> dict[str, Any]:
    venue_attrs = _as_dict(_as_dict(venue).get("attributes"))
    location_attrs = _as_dict(_as_dict(location).get("attributes"))
    return _compact(
        {
            "check_id": data.get("id"),
            "check_number": attrs.get("check_number"),
            "sequence_number": attrs.get("sequence_number"),
            "waiter_id": attrs.get("waiter_id"),
            "status": attrs.get("status"),
            "location_name": attrs.get("location_name"),
            "location_code": attrs.get("location_code"),
            "business_unit": attrs.get("business_unit"),
            "covers": attrs.get("covers"),
            "table_id": attrs.get("table_id"),
            "revenue_center_id": attrs.get("revenue_center_id"),
            "variable_tips_enabled": attrs.get("variable_tips_enabled"),
            "service_charge_pct": location_attrs.get("service_charge_percentage"),
            "venue_timezone": venue_attrs.get("time_zone"),
            "total_cents": attrs.get("total_cents"),
            "remaining_cents": attrs.get("remaining_cents"),
            "net_cents": attrs.get("net_cents"),
            "line_items_tax_cents": attrs.get("line_items_tax_cents"),
            "gratuities_cents": attrs.get("gratuities_cents"),
            # Raw strings keep the source's millisecond precision
            "created_at": attrs.get("created_at"),
            "updated_at": attrs.get("updated_at"),
            "paid_at": attrs.get("paid_at"),
        }
    )


def _line_item_description(item: dict, currency: str) -> str:
    parts = [
        f"{item.get('quantity', 1)}× {item.get('name')}",
        format_currency(_to_int(item.get("cents")), currency),
    ]
    if item.get("category"):
        parts.append(f"Category: {item['category']}")
    if item.get("revenue_center"):
        parts.append(f"Revenue centre: {item['revenue_center']}")
    return " · ".join(parts)


def _discount_cents(discount: dict) -> int:
    for key in ("cents", "amount_cents"):
        if discount.get(key) is not None:
            return _to_int(discount[key])
    return 0


def _discount_description(discount: dict, currency: str) -> str:
    name = discount.get("name") or discount.get("code") or "Discount"
    if discount.get("cents") is not None or discount.get("amount_cents") is not None:
        amount = format_currency(abs(_discount_cents(discount)), currency)
    elif discount.get("percentage") is not None:
        amount = f"{discount['percentage']}%"
    else:
        amount = "amount unknown"
    return f"{name}: -{amount}"


# ---------------------------------------------------------------------------
# Payment documents
# ---------------------------------------------------------------------------


def extract_payment_records(doc: Any) -> list[dict]:
    """Accepts a raw array, ``{"data": [...]}`` or ``{"payments": [...]}``."""
    if isinstance(doc, list):
        records = doc
    elif isinstance(doc, dict):
        records = doc.get("data") or doc.get("payments") or []
    else:
        records = []

    if not isinstance(records, list):
        logger.debug(f"Unrecognized payments document shape: {type(records)}")
        return []
    return [record for record in records if isinstance(record, dict)]


def parse_payments_document(doc: Any, ctx: ParseContext) -> list[Event]:
    """Parse a payments document into payment events.

    Unrecognized shapes yield an empty list rather than an error.
    """
    events: list[Event] = []
    for payment in extract_payment_records(doc):
        events.extend(_payment_events(payment, ctx))
    return events


def payment_amount_cents(attrs: dict) -> int:
    for key in PAYMENT_AMOUNT_KEYS:
        if attrs.get(key) is not None:
            return _to_int(attrs[key])
    return 0


def _payment_events(payment: dict, ctx: ParseContext) -> list[Event]:
    # Raw mapping or JSON:API resource with "attributes"
    attrs = _as_dict(payment.get("attributes")) or payment
    pay_id = payment.get("id") or attrs.get("id")
    currency = attrs.get("currency") or DEFAULT_CURRENCY
    amount = payment_amount_cents(attrs)
    metadata = dict(attrs)

    def build(kind: str, timestamp: Any, event_type: str, title: str, description: str,
              severity: Severity = Severity.INFO, event_amount: int = amount) -> Event:
        return Event(
            id=ctx.event_id("payment", kind, pay_id),
            timestamp=ctx.parse_timestamp(timestamp),
            source=EventSource.CHECKS_API,
            category=EventCategory.PAYMENT,
            event_type=event_type,
            title=title,
            description=description,
            severity=severity,
            amount=event_amount,
            currency=currency,
            metadata=metadata,
        )

    events: list[Event] = []

    initiated_at = attrs.get("created_at") or attrs.get("initiated_at")
    if initiated_at:
        events.append(
            build("created", initiated_at, "payment.initiated", "Payment Initiated",
                  _payment_description(attrs, amount, currency))
        )

    captured_at = attrs.get("captured_at") or attrs.get("succeeded_at")
    if captured_at:
        events.append(
            build("captured", captured_at, "payment.captured", "Payment Captured",
                  f"Payment of {format_currency(amount, currency)} successfully captured.")
        )

    failed_at = attrs.get("failed_at")
    if failed_at:
        reason = (
            attrs.get("failure_reason")
            or attrs.get("error_message")
            or attrs.get("decline_code")
            or attrs.get("failure_code")
            or "unknown reason"
        )
        events.append(
            build("failed", failed_at, "payment.failed", "Payment Failed",
                  f"Payment of {format_currency(amount, currency)} failed. Reason: {reason}",
                  severity=Severity.ERROR)
        )

    refunded_at = attrs.get("refunded_at")
    if refunded_at:
        refund_cents = _to_int(attrs.get("refund_amount_cents"), default=None)
        if refund_cents is None:
            refund_cents = amount
        events.append(
            build("refunded", refunded_at, "payment.refunded", "Payment Refunded",
                  f"Refund of {format_currency(abs(refund_cents), currency)} processed.",
                  severity=Severity.WARNING, event_amount=-abs(refund_cents))
        )

    return events


def _payment_description(attrs: dict, amount: int, currency: str) -> str:
    method = attrs.get("method") or attrs.get("payment_method") or attrs.get("type") or "unknown"
    parts = [f"Method: {method}", f"Amount: {format_currency(amount, currency)}"]
    if attrs.get("status"):
        parts.append(f"Status: {attrs['status']}")
    ref = attrs.get("reference") or attrs.get("external_id") or attrs.get("stripe_payment_intent_id")
    if ref:
        parts.append(f"Ref: {ref}")
    return " · ".join(parts)


# ---------------------------------------------------------------------------
# Version (audit trail) documents
# ---------------------------------------------------------------------------


def extract_version_records(doc: Any) -> list[dict]:
    """Pull version records from a check document's ``included``, a ``data`` array, or a raw array."""
    if isinstance(doc, list):
        return [record for record in doc if isinstance(record, dict)]
    if isinstance(doc, dict):
        if doc.get("included") is not None:
            candidates = _as_list(doc.get("included"))
        elif isinstance(doc.get("data"), list):
            candidates = doc["data"]
        else:
            return []
        return [r for r in candidates if isinstance(r, dict) and r.get("type") == "versions"]
    return []


def _version_changes(record: dict) -> dict:
    attrs = _as_dict(record.get("attributes")) or record
    return _as_dict(attrs.get("object_changes"))


def infer_currency_from_versions(versions: list[dict]) -> Optional[str]:
    """Latest non-blank currency recorded by any version's ``currency`` change."""
    inferred = None
    for version in versions:
        change = _version_changes(version).get("currency")
        if change is None:
            continue
        values = [v for v in _as_list(change) if v is not None and str(v).strip()]
        if values:
            inferred = str(values[-1]).strip()
    return inferred


def parse_versions_document(doc: Any, ctx: ParseContext, currency: Optional[str] = None) -> list[Event]:
    """Parse audit-trail version records into version events.

    Args:
        doc: Check document with sideloaded versions, ``{"data": [...]}`` or a raw array
        ctx: Id/timestamp context of the calling source
        currency: Currency for monetary diffs. When None or blank it is inferred from the
            versions themselves, falling back to GBP.

    Returns:
        One event per version record that has a ``created_at``.
    """
    versions = extract_version_records(doc)
    if not currency or not str(currency).strip():
        currency = infer_currency_from_versions(versions) or DEFAULT_CURRENCY

    events = []
    for version in versions:
        event = _version_event(version, ctx, currency)
        if event is not None:
            events.append(event)
    return events


def _version_event(version: dict, ctx: ParseContext, currency: str) -> Optional[Event]:
    attrs = _as_dict(version.get("attributes")) or version
    changes = _as_dict(attrs.get("object_changes"))
    event_name = attrs.get("event") or "update"
    version_id = version.get("id") or attrs.get("id")

    created_at = attrs.get("created_at")
    if created_at is None:
        logger.debug(f"Skipping version {version_id} without created_at")
        return None

    described = describe_version(event_name, changes, currency)

    return Event(
        id=ctx.event_id("version", str(version_id)),
        timestamp=ctx.parse_timestamp(created_at),
        source=EventSource.PAPER_TRAIL,
        category=EventCategory.VERSION,
        event_type=f"version.{event_name}",
        title=described.title,
        description=described.description,
        severity=described.severity,
        currency=currency,
        metadata=_compact(
            {
                "version_id": str(version_id),
                "item_type": attrs.get("item_type"),
                "item_id": attrs.get("item_id"),
                "event": attrs.get("event"),
                "whodunnit": attrs.get("whodunnit"),
                "changed_fields": ", ".join(changes.keys()),
            }
        ),
    )
