"""Pytest fixtures for check-timeline tests."""

import copy
import json
from datetime import datetime, timezone
from typing import Any

import pytest

from check_timeline.models.event import Event, EventCategory, EventSource, Severity
from check_timeline.sources.base import ParseContext

CHECK_ID = "abc-123"

CHECK_DOC: dict[str, Any] = {
    "data": {
        "id": CHECK_ID,
        "type": "checks",
        "attributes": {
            "check_number": 1001,
            "status": "closed",
            "location_code": "LDN01",
            "location_name": "Soho",
            "currency": "GBP",
            "total_cents": 1200,
            "table_id": "12",
            "covers": 2,
            "created_at": "2024-03-15T12:00:00.123Z",
            "updated_at": "2024-03-15T12:05:30.456Z",
            "paid_at": "2024-03-15T12:20:00.000Z",
            "line_items": [
                {"name": "Burger", "quantity": 2, "cents": 800, "category": "Mains"},
                {"name": "Cola", "quantity": 1, "cents": 400},
            ],
            "discounts": [{"id": "d1", "name": "Staff", "cents": 200}],
            "service_charges": [{"id": "s1", "name": "Service", "cents": 150}],
        },
        "relationships": {"location": {"data": {"id": "loc-1", "type": "locations"}}},
    },
    "included": [
        {"type": "venues", "id": "LDN01", "attributes": {"name": "Soho Kitchen", "time_zone": "Europe/London"}},
        {"type": "locations", "id": "loc-1", "attributes": {"service_charge_percentage": 12.5}},
        {
            "type": "versions",
            "id": "v1",
            "attributes": {
                "event": "create",
                "created_at": "2024-03-15T12:00:00.200Z",
                "item_type": "Check",
                "item_id": CHECK_ID,
                "whodunnit": "waiter-7",
                "object_changes": {
                    "check_number": [None, 1001],
                    "status": [None, "open"],
                    "table_id": [None, "12"],
                    "covers": [None, 2],
                },
            },
        },
        {
            "type": "versions",
            "id": "v2",
            "attributes": {
                "event": "update",
                "created_at": "2024-03-15T12:20:00.500Z",
                "item_type": "Check",
                "item_id": CHECK_ID,
                "object_changes": {
                    "status": ["open", "closed"],
                    "amount_due": [1200, 0],
                    "paid_at": [None, "2024-03-15T12:20:00.000Z"],
                },
            },
        },
    ],
}

PAYMENTS_DOC: dict[str, Any] = {
    "data": [
        {
            "id": "pay-1",
            "type": "payments",
            "attributes": {
                "amount_cents": 1150,
                "currency": "GBP",
                "method": "card",
                "status": "captured",
                "created_at": "2024-03-15T12:19:00.000Z",
                "captured_at": "2024-03-15T12:19:05.000Z",
            },
        }
    ]
}

RAYGUN_NESTED: dict[str, Any] = {
    "OccurredOn": "2024-03-15T12:10:00.250Z",
    "Details": {
        "Error": {
            "ClassName": "System.NullReferenceException",
            "Message": "Object reference not set to an instance of an object",
            "InnerError": {"ClassName": "ArgumentError", "Message": "payment_method cannot be nil"},
            "StackTrace": [
                {"ClassName": "PaymentsController", "MethodName": "create", "FileName": "payments_controller.rb", "LineNumber": 42}
            ],
        },
        "Request": {
            "Url": "https://api.example.com/public/checks/abc-123/payments",
            "HttpMethod": "POST",
            "IpAddress": "10.0.0.1",
        },
        "Response": {"StatusCode": 500},
        "User": {"Identifier": "user@example.com"},
        "Tags": ["production"],
        "UserCustomData": {"check_id": CHECK_ID, "context": {"retry": 1}},
        "MachineName": "web-01",
        "Version": "1.2.3",
    },
}

RAYGUN_FLAT: dict[str, Any] = {
    "OccurredOn": "2024-03-15T12:03:45.678Z",
    "error": {
        "className": "ActiveRecord::RecordNotFound",
        "message": "Couldn't find Check with id=abc-123",
        "stackTrace": [{"fileName": "checks_controller.rb", "lineNumber": 10, "methodName": "show"}],
    },
    "request": {"method": "GET", "url": "https://api.example.com/public/checks/abc-123"},
    "tags": ["production", "api"],
    "userCustomData": {"check_id": CHECK_ID},
    "machineName": "web-worker-01",
    "version": "main-abc1234",
}


@pytest.fixture
def check_doc():
    """Fresh copy of a complete check document with sideloaded versions."""
    return copy.deepcopy(CHECK_DOC)


@pytest.fixture
def payments_doc():
    """Fresh copy of a JSON:API payments document."""
    return copy.deepcopy(PAYMENTS_DOC)


@pytest.fixture
def raygun_nested():
    return copy.deepcopy(RAYGUN_NESTED)


@pytest.fixture
def raygun_flat():
    return copy.deepcopy(RAYGUN_FLAT)


@pytest.fixture
def ctx():
    """Parse context for the sample check."""
    return ParseContext(check_id=CHECK_ID, source_name="test_source")


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def check_file(tmp_path, check_doc):
    """Check document written to disk."""
    return _write_json(tmp_path / "check.json", check_doc)


@pytest.fixture
def payments_file(tmp_path, payments_doc):
    """Payments document written to disk."""
    return _write_json(tmp_path / "payments.json", payments_doc)


@pytest.fixture
def write_json(tmp_path):
    """Write arbitrary JSON into tmp_path and return the path.

    Returns:
        Callable taking (name, data)
    """

    def _write(name, data):
        return _write_json(tmp_path / name, data)

    return _write


@pytest.fixture
def build_event():
    """Factory for Events with sensible defaults.

    Returns:
        Callable taking (timestamp, **overrides)
    """
    counter = {"n": 0}

    def _build(timestamp: Any = "2024-03-15T12:00:00.000Z", **overrides) -> Event:
        counter["n"] += 1
        fields = {
            "id": f"evt-{counter['n']}",
            "timestamp": timestamp,
            "source": EventSource.CHECKS_API,
            "category": EventCategory.CHECK,
            "event_type": "check.created",
            "title": f"Event {counter['n']}",
            "severity": Severity.INFO,
        }
        fields.update(overrides)
        return Event(**fields)

    return _build


@pytest.fixture
def utc():
    """Shorthand for building aware UTC datetimes."""

    def _utc(*args) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)

    return _utc
