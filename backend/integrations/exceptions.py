"""Errors raised by the CoinGecko, Yahoo Finance and exchange-rate clients.

The pricing layer treats every ``PriceSourceError`` as transient and keeps
the prior price; the proxy routes map them to HTTP status codes.
"""


class PriceSourceError(Exception):
    """Base class; carries the name of the source that failed."""

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class PriceSourceAuthError(PriceSourceError):
    """API key rejected (HTTP 401/403)."""


class PriceSourceConnectionError(PriceSourceError):
    """Timeout, DNS failure or refused connection. Always worth retrying."""

    retriable = True


class PriceSourceAPIError(PriceSourceError):
    """Non-2xx upstream response."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def retriable(self) -> bool:
        """Rate limits and 5xx responses clear up on their own."""
        if self.status_code is None:
            return False
        return self.rate_limited or self.status_code >= 500


class PriceSourceDataError(PriceSourceError):
    """Response body could not be parsed into the expected shape."""
