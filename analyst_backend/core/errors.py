"""Error taxonomy for the analysis pipeline."""
from __future__ import annotations


class AnalystError(Exception):
    """Base class for errors raised while producing an analysis."""


class InputError(AnalystError, ValueError):
    """The caller supplied a slug or URL that cannot be resolved to an event slug."""


class UpstreamUnavailable(AnalystError):
    """The market source could not be reached or answered with a server error."""


class EventNotFound(UpstreamUnavailable):
    """The market source has no event for the requested slug."""


class NoMarketsFound(AnalystError):
    """The event exists but normalization produced no usable options."""


class RateLimited(AnalystError):
    """A data or model source rejected the request because its quota is exhausted."""

    def __init__(self, message: str = "rate limited", *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class AnalysisTimeout(AnalystError):
    """Computing a fresh analysis exceeded the hard deadline."""


class PartialSignalFailure(AnalystError):
    """A news or social adapter failed; absorbed by the collector as a neutral vector."""


__all__ = [
    "AnalystError",
    "AnalysisTimeout",
    "EventNotFound",
    "InputError",
    "NoMarketsFound",
    "PartialSignalFailure",
    "RateLimited",
    "UpstreamUnavailable",
]
