"""Saved check JSON snapshot source."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..models.event import Event
from .base import BaseSource, SourceError
from .checks_parser import (
    extract_version_records,
    parse_check_document,
    parse_check_total_cents,
    parse_payments_document,
    parse_versions_document,
)

logger = logging.getLogger(__name__)


class CheckFileSource(BaseSource):
    """Reads a check document (and optionally its payments) from local files.

    The files have the same shape as the API responses, so a check can be
    inspected offline or from a copy attached to a support ticket.
    """

    def __init__(
        self,
        check_id: Optional[str] = None,
        check_file: Optional[str | Path] = None,
        payments_file: Optional[str | Path] = None,
        **options: Any,
    ):
        super().__init__(check_id, **options)
        self.check_file = Path(check_file) if check_file else None
        self.payments_file = Path(payments_file) if payments_file else None
        self.check_total_cents: Optional[int] = None

    def available(self) -> bool:
        if self.check_file is None:
            return False
        if not self.check_file.is_file():
            logger.warning(f"Check file not found: {self.check_file}")
            return False
        return True

    def fetch(self) -> list[Event]:
        events = self._load_check_events()
        if self.payments_file is not None:
            events.extend(self._load_payment_events())
        return events

    def _load_check_events(self) -> list[Event]:
        doc = _read_json_file(self.check_file)

        if not isinstance(doc, dict) or not isinstance(doc.get("data"), dict) or not doc["data"]:
            raise SourceError(
                f'{self.check_file} does not look like a check JSON:API document (expected a root "data" object)'
            )

        if not self.check_id or not str(self.check_id).strip():
            self.check_id = self._derive_check_id(doc)

        self.check_total_cents = parse_check_total_cents(doc)

        events = parse_check_document(doc, self.context)
        if extract_version_records(doc):
            # No fallback here so the versions can supply the currency
            currency = (doc["data"].get("attributes") or {}).get("currency")
            events.extend(parse_versions_document(doc, self.context, currency=currency))
        return events

    def _load_payment_events(self) -> list[Event]:
        if not self.payments_file.is_file():
            logger.warning(f"Payments file not found: {self.payments_file}; skipping payment events")
            return []
        return parse_payments_document(_read_json_file(self.payments_file), self.context)

    def _derive_check_id(self, doc: dict) -> str:
        file_id = doc["data"].get("id")
        if file_id is None or not str(file_id).strip():
            raise SourceError(
                "Could not determine check id: none was given and "
                f'"data.id" is missing from {self.check_file}'
            )
        return str(file_id)


def _read_json_file(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise SourceError(f"File not found: {path}") from e
    except PermissionError as e:
        raise SourceError(f"Permission denied reading file: {path}") from e
    except json.JSONDecodeError as e:
        raise SourceError(f"Could not parse JSON in {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise SourceError(f"{path} is not valid UTF-8: {e}") from e
