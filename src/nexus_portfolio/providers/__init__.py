"""Provider access layer - HTTP clients for third-party data APIs."""

from nexus_portfolio.providers.http import (
    ProviderClient,
    ProviderError,
    ProviderHTTPError,
    ProviderRateLimitError,
    ProviderTransportError,
    RateLimiter,
)

__all__ = [
    "ProviderClient",
    "ProviderError",
    "ProviderHTTPError",
    "ProviderRateLimitError",
    "ProviderTransportError",
    "RateLimiter",
]
