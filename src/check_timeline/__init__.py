"""Check Timeline - reconstruct the lifecycle of a check from many sources."""

__version__ = "1.0.0"
