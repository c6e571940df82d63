"""Source adapter contract and shared helpers."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from ..models.event import Event, make_event_id, parse_iso_timestamp


class SourceError(Exception):
    """Raised when a source cannot read or interpret its input."""

    pass


@runtime_checkable
class SourceAdapter(Protocol):
    """Anything the Aggregator can run.

    Sources may additionally expose a ``check_total_cents`` attribute holding
    the authoritative check total once fetched.
    """

    source_name: str

    def available(self) -> bool: ...

    def fetch(self) -> list[Event]: ...


@dataclass(frozen=True)
class ParseContext:
    """Inputs shared by every event a parser builds.

    Event ids are a pure function of (check_id, source_name, components).
    """

    check_id: Optional[str]
    source_name: str

    def event_id(self, *components: Any) -> str:
        return make_event_id(self.check_id, self.source_name, *components)

    def parse_timestamp(self, value: Any) -> datetime:
        """Parse a timestamp, naming the source in the error.

        Raises:
            ValueError: If value is missing or unparseable
        """
        try:
            return parse_iso_timestamp(value)
        except ValueError as e:
            raise ValueError(f"{e} in {self.source_name}") from e


def _snake_case(name: str) -> str:
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
    return name.lower()


class BaseSource(ABC):
    """Base class for source adapters.

    Subclasses implement ``fetch``; they may override ``available`` to gate on
    configuration or file existence, and ``source_name`` for log output.
    """

    source_name: str = ""

    def __init__(self, check_id: Optional[str] = None, **options: Any):
        self.check_id = check_id
        self.options = options
        if not self.source_name:
            self.source_name = _snake_case(type(self).__name__)

    def available(self) -> bool:
        return True

    @abstractmethod
    def fetch(self) -> list[Event]:
        """Return this source's events. May raise; the Aggregator isolates failures."""

    @property
    def context(self) -> ParseContext:
        return ParseContext(check_id=self.check_id, source_name=self.source_name)
