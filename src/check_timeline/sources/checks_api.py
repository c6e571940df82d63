"""Live Checks REST API source."""

import logging
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import ChecksApiConfig, CheckTimelineConfig
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

USER_AGENT = "check-timeline/1.0"
MAX_ERROR_BODY = 300


class ChecksApiError(SourceError):
    """Raised for non-success HTTP responses or unparseable JSON bodies."""

    pass


class ChecksApiSource(BaseSource):
    """Fetches a check and its payments from the Checks API.

    Endpoints:
        GET /public/checks/{id}
        GET /public/checks/{id}/payments

    Credentials come from CHECKS_API_BASE_URL, CHECKS_API_KEY and
    CHECKS_APP_NAME unless an explicit ``config`` is passed.
    """

    def __init__(
        self,
        check_id: Optional[str] = None,
        config: Optional[ChecksApiConfig] = None,
        session: Optional[requests.Session] = None,
        **options: Any,
    ):
        super().__init__(check_id, **options)
        self.config = config or CheckTimelineConfig.from_env().checks_api
        self._session = session
        self.check_total_cents: Optional[int] = None

    def available(self) -> bool:
        if not self.check_id:
            return False
        return self.config.configured

    def fetch(self) -> list[Event]:
        return self._fetch_check_events() + self._fetch_payment_events()

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._build_session()
        return self._session

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=self.config.max_retries,
            connect=self.config.max_retries,
            read=self.config.max_retries,
            status=0,
            backoff_factor=self.config.retry_backoff,
            allowed_methods=frozenset({"GET"}),
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers.update(
            {
                "X-API-Key": self.config.api_key or "",
                "X-App-Name": self.config.app_name or "",
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            }
        )
        return session

    def _get_json(self, endpoint: str) -> Any:
        url = f"{(self.config.base_url or '').rstrip('/')}{endpoint}"
        logger.debug(f"GET {url}")
        response = self.session.get(url, timeout=self.config.timeout_seconds)

        if not response.ok:
            raise ChecksApiError(
                f"{self.source_name} received HTTP {response.status_code} from {endpoint}. "
                f"Body: {(response.text or '')[:MAX_ERROR_BODY]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise ChecksApiError(f"{self.source_name} could not parse JSON from {endpoint}: {e}") from e

    def _fetch_check_events(self) -> list[Event]:
        doc = self._get_json(f"/public/checks/{self.check_id}")
        if not isinstance(doc, dict):
            raise ChecksApiError(f"{self.source_name} expected a JSON object for check {self.check_id}")

        self.check_total_cents = parse_check_total_cents(doc)

        events = parse_check_document(doc, self.context)
        if extract_version_records(doc):
            currency = ((doc.get("data") or {}).get("attributes") or {}).get("currency")
            events.extend(parse_versions_document(doc, self.context, currency=currency))
        return events

    def _fetch_payment_events(self) -> list[Event]:
        doc = self._get_json(f"/public/checks/{self.check_id}/payments")
        return parse_payments_document(doc, self.context)
