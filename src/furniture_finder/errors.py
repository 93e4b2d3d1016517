"""Error taxonomy surfaced by providers and the search pipeline."""

from __future__ import annotations


class FurnitureFinderError(Exception):
    """Base class for every error raised by this package."""


class ProviderError(FurnitureFinderError):
    def __init__(self, message: str, *, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider


class AuthError(ProviderError):
    """The provider rejected the supplied credential. Never retried."""


class RateLimitError(ProviderError):
    """The provider throttled the request. The caller decides when to retry."""


class TransportError(ProviderError):
    """Network, protocol, or response-shape failure talking to a provider."""


class UnsupportedCapabilityError(ProviderError):
    """The selected backend variant does not offer the requested operation."""


class MalformedAnalysisError(FurnitureFinderError):
    """The classification reply did not follow the line-anchored format.

    Soft error: the search pipeline catches it and continues in degraded mode.
    """

    def __init__(self, message: str, *, raw_content: str = "") -> None:
        super().__init__(message)
        self.raw_content = raw_content
