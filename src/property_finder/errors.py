"""Exceptions raised inside the search pipeline."""

from typing import Optional


class PropertyFinderError(Exception):
    """Base class for all pipeline errors."""


class BudgetExhaustedError(PropertyFinderError):
    """A source spent its request budget for this search.

    Recoverable: the source stops its own sequence, the search goes on.
    """

    def __init__(self, source: str, limit: float):
        super().__init__(f"Request limit ({limit}) reached for {source}")
        self.source = source
        self.limit = limit


class SourceRequestError(PropertyFinderError):
    """A request to an external service failed."""

    def __init__(self, source: str, message: str, status: Optional[int] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status = status

    @property
    def transient(self) -> bool:
        # No status means network error or timeout
        return self.status is None or self.status == 429 or self.status >= 500


class RateLimitedError(SourceRequestError):
    """HTTP 429 from an endpoint that throttles callers."""

    def __init__(self, source: str):
        super().__init__(source, "rate limited", status=429)
