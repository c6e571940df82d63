"""Raygun exception report file source."""

import glob
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from ..models.event import Event
from .base import BaseSource
from .raygun_parser import parse_exception_payload

logger = logging.getLogger(__name__)

FilePatterns = Union[str, Path, Iterable[Union[str, Path]], None]


def _is_glob(pattern: str) -> bool:
    return any(char in pattern for char in "*?[")


def resolve_files(patterns: FilePatterns) -> list[Path]:
    """Expand a path, glob pattern or list of either into existing files.

    Missing literal paths are dropped silently; ``available()`` reports
    whether anything is left.
    """
    if patterns is None:
        return []
    if isinstance(patterns, (str, Path)):
        patterns = [patterns]

    files: list[Path] = []
    for item in patterns:
        pattern = str(item)
        if _is_glob(pattern):
            candidates = [Path(p) for p in sorted(glob.glob(pattern))]
        else:
            candidates = [Path(pattern)]
        for path in candidates:
            if path.is_file() and path not in files:
                files.append(path)
    return files


class RaygunFileSource(BaseSource):
    """One exception event per Raygun JSON file.

    A file that cannot be read or parsed is logged and skipped; the rest
    still produce events.
    """

    def __init__(self, check_id: Optional[str] = None, files: FilePatterns = None, **options: Any):
        super().__init__(check_id, **options)
        self.files = resolve_files(files)

    def available(self) -> bool:
        return bool(self.files)

    def fetch(self) -> list[Event]:
        events = []
        for path in self.files:
            event = self._parse_file(path)
            if event is not None:
                events.append(event)
        return events

    def _parse_file(self, path: Path) -> Optional[Event]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except FileNotFoundError:
            logger.warning(f"Raygun file not found: {path}")
            return None
        except PermissionError:
            logger.warning(f"Permission denied reading Raygun file: {path}")
            return None
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse JSON in {path}: {e}")
            return None
        except UnicodeDecodeError as e:
            logger.warning(f"Raygun file {path} is not valid UTF-8: {e}")
            return None
        except OSError as e:
            logger.warning(f"Could not read Raygun file {path}: {e}")
            return None

        if not isinstance(payload, dict):
            logger.warning(f"Raygun file {path} does not contain a JSON object; skipping")
            return None

        try:
            return parse_exception_payload(payload, str(path), self.context)
        except Exception as e:
            logger.warning(f"Unexpected error reading {path}: {type(e).__name__}: {e}")
            return None
