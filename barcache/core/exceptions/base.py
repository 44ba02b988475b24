"""barcache core exception classes."""

from typing import Any


class BarCacheError(Exception):
    """Root exception for the bar cache."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        """Initialise the exception.

        Args:
            message: human readable message
            error_code: stable machine readable code
            details: additional context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class VendorError(BarCacheError):
    """Failure raised by an upstream market-data vendor."""

    def __init__(
        self,
        message: str,
        vendor_name: str,
        error_code: str = "VENDOR_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, details)
        self.vendor_name = vendor_name


class RateLimitError(VendorError):
    """The vendor reported (or we hit) its request rate limit."""

    def __init__(
        self,
        message: str,
        vendor_name: str,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if retry_after is not None:
            super_details["retry_after"] = retry_after
        super().__init__(message, vendor_name, "RATE_LIMIT_ERROR", super_details)
        self.retry_after = retry_after


class AuthenticationError(VendorError):
    """Vendor credentials are missing, rejected or expired."""

    def __init__(
        self,
        message: str,
        vendor_name: str,
        auth_method: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if auth_method:
            super_details["auth_method"] = auth_method
        super().__init__(message, vendor_name, "AUTHENTICATION_ERROR", super_details)


class NetworkError(VendorError):
    """Transport failure or unexpected HTTP status from a vendor."""

    def __init__(
        self,
        message: str,
        vendor_name: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if status_code is not None:
            super_details["status_code"] = status_code
        super().__init__(message, vendor_name, "NETWORK_ERROR", super_details)
        self.status_code = status_code


class AllVendorsExhaustedError(BarCacheError):
    """Every configured vendor failed or returned nothing."""

    def __init__(
        self,
        message: str,
        failures: list[dict[str, Any]] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if failures:
            super_details["failures"] = failures
        super().__init__(message, "ALL_VENDORS_FAILED", super_details)
        self.failures = failures or []


class DataValidationError(BarCacheError):
    """Input or vendor payload failed validation."""

    def __init__(
        self,
        message: str,
        validation_errors: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if validation_errors:
            super_details["validation_errors"] = validation_errors
        super().__init__(message, "VALIDATION_ERROR", super_details)
        self.validation_errors = validation_errors or {}


class CacheError(BarCacheError):
    """Cache store failure."""

    def __init__(
        self,
        message: str,
        table: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if table:
            super_details["table"] = table
        super().__init__(message, "CACHE_ERROR", super_details)


class StorageLockError(CacheError):
    """The store reported a write conflict; safe to retry."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details=details)
        self.error_code = "STORAGE_LOCK_ERROR"


class SymbolInvalidError(BarCacheError):
    """No vendor recognises the symbol."""

    def __init__(self, symbol: str, details: dict[str, Any] | None = None):
        super().__init__(f"Symbol {symbol} not found by any provider", "SYMBOL_INVALID", details)
        self.symbol = symbol


class SymbolNotFoundError(BarCacheError):
    """The symbol has never been requested."""

    def __init__(self, symbol: str):
        super().__init__(f"Symbol {symbol} not found in database", "SYMBOL_NOT_FOUND", {"symbol": symbol})
        self.symbol = symbol


class SymbolInactiveError(BarCacheError):
    """The symbol exists but was deactivated."""

    def __init__(self, symbol: str):
        super().__init__(f"Symbol {symbol} is inactive", "SYMBOL_INACTIVE", {"symbol": symbol})
        self.symbol = symbol


class StaleOrMissingError(BarCacheError):
    """Cached data is stale or absent; a refresh has been queued."""

    def __init__(
        self,
        message: str,
        symbol: str,
        granularity: str,
        retry_after: int = 15,
        details: dict[str, Any] | None = None,
    ):
        super_details = {**(details or {}), "symbol": symbol, "granularity": granularity, "retry_after": retry_after}
        super().__init__(message, "STALE_OR_MISSING", super_details)
        self.symbol = symbol
        self.granularity = granularity
        self.retry_after = retry_after


class ConfigurationError(BarCacheError):
    """Invalid configuration value."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", {"field": field} if field else None)
