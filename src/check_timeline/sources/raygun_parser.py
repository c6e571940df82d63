"""Translation of Raygun exception reports into Events.

Raygun payloads arrive either wrapped in a ``Details`` envelope::

    {
        "OccurredOn": "2024-01-15T10:23:45.000Z",
        "Details": {
            "Error": {"ClassName": "...", "Message": "...", "StackTrace": [...]},
            "Request": {"Url": "...", "HttpMethod": "POST"},
            "Response": {"StatusCode": 500},
            "User": {"Identifier": "user@example.com"},
            "Tags": ["tag1"],
            "UserCustomData": {...},
            "MachineName": "web-01",
            "Version": "1.2.3"
        }
    }

or flat (``error``/``request`` at the top level, camelCase keys), as written
by some client libraries. Both shapes are accepted.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..models.event import Event, EventCategory, EventSource, Severity
from .base import ParseContext

logger = logging.getLogger(__name__)

MAX_STACK_FRAMES = 5
MAX_TITLE_MESSAGE = 80
MAX_CAUSE_MESSAGE = 120

# Class-name substrings that mark a fatal error
CRITICAL_PATTERNS = (
    "OutOfMemoryError",
    "SystemStackError",
    "NoMemoryError",
    "FatalError",
    "Segfault",
    "SignalException",
)


def _pick(mapping: Any, *keys: str) -> Any:
    """First non-None value among keys (PascalCase / camelCase variants)."""
    if not isinstance(mapping, dict):
        return None
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def _tag_list(details: dict) -> list:
    tags = _pick(details, "Tags", "tags")
    if not tags:
        return []
    if isinstance(tags, (list, tuple)):
        return list(tags)
    return [tags]


def truncate(text: Optional[str], max_length: int) -> Optional[str]:
    if text is None or len(text) <= max_length:
        return text
    return f"{text[:max_length - 1]}…"


def parse_occurred_on(payload: dict, ctx: ParseContext) -> datetime:
    """Occurrence time of the report; falls back to now rather than dropping the event."""
    raw = _pick(payload, "OccurredOn", "occurredOn", "occurred_on")
    try:
        return ctx.parse_timestamp(raw)
    except ValueError as e:
        logger.warning(f"Could not parse OccurredOn timestamp ({e}); using current time as fallback")
        return datetime.now(timezone.utc)


def derive_severity(class_name: str, status_code: Any) -> Severity:
    if any(pattern in str(class_name) for pattern in CRITICAL_PATTERNS):
        return Severity.CRITICAL

    try:
        status = int(status_code) if status_code is not None else None
    except (TypeError, ValueError):
        status = None

    if status is not None and 500 <= status <= 599:
        return Severity.ERROR
    if status is not None and 400 <= status <= 499:
        return Severity.WARNING
    # Unhandled exceptions are at least an error
    return Severity.ERROR


def parse_exception_payload(payload: dict[str, Any], file_ref: str, ctx: ParseContext) -> Event:
    """Build one exception event from a Raygun payload.

    Args:
        payload: Parsed Raygun JSON
        file_ref: Path (or other reference) the payload was read from; part of the id
        ctx: Id/timestamp context of the calling source

    Returns:
        An ``exception.raised`` Event
    """
    occurred_on = parse_occurred_on(payload, ctx)
    details = _pick(payload, "Details", "details") or payload
    error = _pick(details, "Error", "error") or {}
    request = _pick(details, "Request", "request")
    response = _pick(details, "Response", "response")

    class_name = _pick(error, "ClassName", "className") or "UnknownError"
    message = _pick(error, "Message", "message") or "No message provided"
    status_code = _pick(response, "StatusCode", "statusCode")

    return Event(
        id=ctx.event_id("raygun", file_ref, occurred_on.isoformat()),
        timestamp=occurred_on,
        source=EventSource.RAYGUN,
        category=EventCategory.EXCEPTION,
        event_type="exception.raised",
        title=f"{class_name}: {truncate(str(message), MAX_TITLE_MESSAGE)}",
        description=build_description(error, request, response, details),
        severity=derive_severity(class_name, status_code),
        metadata=build_metadata(details, file_ref),
    )


def format_stack_frame(frame: dict) -> str:
    file_name = _pick(frame, "FileName", "fileName") or "?"
    line = _pick(frame, "LineNumber", "lineNumber") or "?"
    method = _pick(frame, "MethodName", "methodName", "Method") or "?"
    class_name = _pick(frame, "ClassName", "className")
    location = f"{class_name}#{method}" if class_name else method
    return f"  {location} ({file_name}:{line})"


def build_description(error: dict, request: Any, response: Any, details: dict) -> str:
    parts: list[str] = []

    message = _pick(error, "Message", "message")
    if message:
        parts.append(str(message))

    # An empty request object carries nothing worth a "Request: ? ?" line
    if request:
        method = _pick(request, "HttpMethod", "method") or "?"
        url = _pick(request, "Url", "url") or "?"
        parts.append(f"Request: {method} {url}")

    status = _pick(response, "StatusCode", "statusCode")
    if status is not None:
        parts.append(f"Response: HTTP {status}")

    inner = _pick(error, "InnerError", "innerError")
    if isinstance(inner, dict):
        inner_class = _pick(inner, "ClassName", "className") or "UnknownError"
        inner_message = _pick(inner, "Message", "message") or ""
        parts.append(f"Caused by: {inner_class}: {truncate(str(inner_message), MAX_CAUSE_MESSAGE)}")

    frames = _pick(error, "StackTrace", "stackTrace") or []
    if frames:
        parts.append("Stack trace:")
        parts.extend(format_stack_frame(frame) for frame in frames[:MAX_STACK_FRAMES])
        remaining = len(frames) - MAX_STACK_FRAMES
        if remaining > 0:
            parts.append(f"  ... {remaining} more frames")

    tags = _tag_list(details)
    if tags:
        parts.append(f"Tags: {', '.join(str(tag) for tag in tags)}")

    machine = _pick(details, "MachineName", "machineName")
    if machine:
        parts.append(f"Machine: {machine}")
    version = _pick(details, "Version", "version")
    if version:
        parts.append(f"App version: {version}")

    return "\n".join(parts)


def build_metadata(details: dict, file_ref: str) -> dict[str, Any]:
    meta: dict[str, Any] = {"file": file_ref}

    user = _pick(details, "User", "user")
    if user:
        if isinstance(user, dict):
            meta["user"] = _pick(user, "Identifier", "identifier", "email") or json.dumps(user)
        else:
            meta["user"] = str(user)

    request = _pick(details, "Request", "request")
    if request:
        meta["http_method"] = _pick(request, "HttpMethod", "method")
        meta["url"] = _pick(request, "Url", "url")
        meta["ip_address"] = _pick(request, "IpAddress", "ipAddress")

    response = _pick(details, "Response", "response")
    if response:
        meta["status_code"] = _pick(response, "StatusCode", "statusCode")

    custom = _pick(details, "UserCustomData", "userCustomData")
    if isinstance(custom, dict):
        for key, value in custom.items():
            meta[f"custom_{key}"] = json.dumps(value) if isinstance(value, (dict, list)) else str(value)

    tags = _tag_list(details)
    if tags:
        meta["tags"] = ", ".join(str(tag) for tag in tags)

    meta["machine_name"] = _pick(details, "MachineName", "machineName")
    meta["app_version"] = _pick(details, "Version", "version")

    return {key: value for key, value in meta.items() if value is not None}
