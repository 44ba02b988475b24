"""Exception hierarchy tests."""

import pytest

from barcache.core.exceptions import (
    AllVendorsExhaustedError,
    AuthenticationError,
    BarCacheError,
    CacheError,
    ConfigurationError,
    DataValidationError,
    DomainError,
    ErrorCode,
    NetworkError,
    RateLimitError,
    StaleOrMissingError,
    StorageLockError,
    SymbolInactiveError,
    SymbolInvalidError,
    SymbolNotFoundError,
    VendorError,
)


class TestExceptionHierarchy:
    def test_base_error(self) -> None:
        error = BarCacheError("boom", "CACHE_ERROR", {"detail": "value"})

        assert str(error) == "boom"
        assert error.error_code == "CACHE_ERROR"
        assert error.details["detail"] == "value"

    def test_default_code(self) -> None:
        assert BarCacheError("boom").error_code == "GENERAL_ERROR"

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (RateLimitError("slow", "alpaca", retry_after=60), "RATE_LIMIT_ERROR"),
            (AuthenticationError("denied", "schwab", auth_method="oauth2"), "AUTHENTICATION_ERROR"),
            (NetworkError("down", "alpaca", status_code=502), "NETWORK_ERROR"),
        ],
    )
    def test_vendor_errors(self, error: VendorError, code: str) -> None:
        assert isinstance(error, VendorError)
        assert error.error_code == code
        assert error.vendor_name in {"alpaca", "schwab"}

    def test_rate_limit_details(self) -> None:
        error = RateLimitError("slow", "alpaca", retry_after=60)
        assert error.retry_after == 60
        assert error.details["retry_after"] == 60

    def test_storage_lock_is_cache_error(self) -> None:
        error = StorageLockError("conflict", {"symbol_id": 1})
        assert isinstance(error, CacheError)
        assert error.error_code == "STORAGE_LOCK_ERROR"

    def test_all_vendors_exhausted_keeps_failures(self) -> None:
        failures = [{"vendor": "alpaca", "reason": "no data"}]
        error = AllVendorsExhaustedError("nothing", failures)
        assert error.failures == failures
        assert error.details["failures"] == failures

    def test_symbol_errors(self) -> None:
        assert SymbolInvalidError("ZZZZ").error_code == "SYMBOL_INVALID"
        assert SymbolNotFoundError("ZZZZ").details == {"symbol": "ZZZZ"}
        assert SymbolInactiveError("AAPL").symbol == "AAPL"

    def test_stale_or_missing(self) -> None:
        error = StaleOrMissingError("old", symbol="AAPL", granularity="5m", retry_after=15, details={"age_minutes": 90})
        assert error.details == {"age_minutes": 90, "symbol": "AAPL", "granularity": "5m", "retry_after": 15}

    def test_validation_and_configuration(self) -> None:
        assert DataValidationError("bad", {"field": "x"}).validation_errors == {"field": "x"}
        assert ConfigurationError("bad", field="store.threads").details == {"field": "store.threads"}
        assert ConfigurationError("bad").details == {}


class TestDomainError:
    def test_retryable_errors(self) -> None:
        stale = DomainError.from_error(StaleOrMissingError("old", "AAPL", "1d"), layer="web")
        assert stale.code is ErrorCode.STALE_OR_MISSING
        assert stale.retryable

        limited = DomainError.from_error(RateLimitError("slow", "alpaca"), layer="cli")
        assert limited.retryable

    def test_permanent_error_payload(self) -> None:
        domain = DomainError.from_error(SymbolNotFoundError("ZZZZ"), layer="web")

        assert domain.to_payload() == {
            "code": "SYMBOL_NOT_FOUND",
            "message": "Symbol ZZZZ not found in database",
            "layer": "web",
            "retryable": False,
            "context": {"symbol": "ZZZZ"},
        }

    def test_unknown_code_maps_to_general(self) -> None:
        assert ErrorCode.from_value("SOMETHING_NEW") is ErrorCode.GENERAL
