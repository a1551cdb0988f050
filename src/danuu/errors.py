"""Exception hierarchy for danuu."""

from __future__ import annotations


class DanuuError(Exception):
    """Base class for all danuu errors."""


class ConfigError(DanuuError):
    """Invalid or unusable configuration. Fatal at startup only."""


class TransportError(DanuuError):
    """A send, receipt or media download on the transport failed."""


class MediaError(DanuuError):
    """A media pipeline stage (search, fetch, deliver) failed."""


class MediaNotFoundError(MediaError):
    """The search service returned no results for the query."""

    def __init__(self, query: str) -> None:
        super().__init__(f"No results for {query!r}")
        self.query = query
