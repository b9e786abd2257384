"""
Error taxonomy.

Upstream problems are ``SourceError`` subclasses.  Adapters catch them at
their boundary and turn them into an empty result plus a warning, so
none of these ever reach the map.  ``OutOfBounds`` is raised and
swallowed inside the normalizer.  An empty category selection is a
normal state (``DispatchResult.empty()``), not an exception.
"""
from __future__ import annotations

from typing import Optional


class TrakkeError(Exception):
    """Base class for all package errors."""


class SourceError(TrakkeError):
    """An upstream data source failed."""

    def __init__(self, source: str, message: str, status: Optional[int] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status = status


class SourceUnavailable(SourceError):
    """Network error, timeout, 5xx or an unusable status code."""


class RateLimited(SourceError):
    """HTTP 429 from an upstream."""


class ParseError(SourceError):
    """Malformed payload or a service exception document."""


class OutOfBounds(TrakkeError):
    """Coordinate outside the national bounding box."""

    def __init__(self, lat: float, lng: float):
        super().__init__(f"({lat:.5f}, {lng:.5f}) outside national bounds")
        self.lat = lat
        self.lng = lng


class CategoryTreeError(TrakkeError):
    """Invalid category tree or unknown node id."""
