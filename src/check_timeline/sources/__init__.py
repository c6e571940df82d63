"""Event sources: document parsers and the adapters that feed them."""

from .base import BaseSource, ParseContext, SourceAdapter, SourceError
from .check_file import CheckFileSource
from .checks_api import ChecksApiError, ChecksApiSource
from .raygun_file import RaygunFileSource

__all__ = [
    "BaseSource",
    "CheckFileSource",
    "ChecksApiError",
    "ChecksApiSource",
    "ParseContext",
    "RaygunFileSource",
    "SourceAdapter",
    "SourceError",
]
