"""Upstream vendor clients."""

from barcache.core.data.providers.alpaca import ALPACA_TIMEFRAMES, AlpacaVendor
from barcache.core.data.providers.base import VendorBars, VendorClient
from barcache.core.data.providers.fallback import FallbackClient, FetchResult
from barcache.core.data.providers.oauth import SchwabTokenManager, TokenSet
from barcache.core.data.providers.rate_limiter import RollingWindowRateLimiter
from barcache.core.data.providers.schwab import SCHWAB_INTERVALS, SchwabVendor

__all__ = [
    "ALPACA_TIMEFRAMES",
    "SCHWAB_INTERVALS",
    "AlpacaVendor",
    "FallbackClient",
    "FetchResult",
    "RollingWindowRateLimiter",
    "SchwabTokenManager",
    "SchwabVendor",
    "TokenSet",
    "VendorBars",
    "VendorClient",
]
