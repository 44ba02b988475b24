"""barcache exception hierarchy."""

from barcache.core.exceptions.base import (
    AllVendorsExhaustedError,
    AuthenticationError,
    BarCacheError,
    CacheError,
    ConfigurationError,
    DataValidationError,
    NetworkError,
    RateLimitError,
    StaleOrMissingError,
    StorageLockError,
    SymbolInactiveError,
    SymbolInvalidError,
    SymbolNotFoundError,
    VendorError,
)
from barcache.core.exceptions.codes import ErrorCode
from barcache.core.exceptions.domain import DomainError

__all__ = [
    "AllVendorsExhaustedError",
    "AuthenticationError",
    "BarCacheError",
    "CacheError",
    "ConfigurationError",
    "DataValidationError",
    "DomainError",
    "ErrorCode",
    "NetworkError",
    "RateLimitError",
    "StaleOrMissingError",
    "StorageLockError",
    "SymbolInactiveError",
    "SymbolInvalidError",
    "SymbolNotFoundError",
    "VendorError",
]
