"""Domain-level error wrapper used at outward surfaces."""

from __future__ import annotations

from typing import Any, Mapping

from barcache.core.exceptions.base import BarCacheError, RateLimitError, StaleOrMissingError, StorageLockError
from barcache.core.exceptions.codes import ErrorCode


class DomainError(BarCacheError):
    """Error carrying a standardized code, originating layer and retry hint."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        layer: str,
        retryable: bool = False,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        payload = dict(context or {})
        details = {**payload, "layer": layer, "retryable": retryable}
        super().__init__(message, code.value, details)
        self.code = code
        self.layer = layer
        self.retryable = retryable
        self.context = payload

    @classmethod
    def from_error(cls, error: BarCacheError, layer: str) -> "DomainError":
        """Wrap any core error, deriving the retry hint from its type."""

        retryable = isinstance(error, (RateLimitError, StaleOrMissingError, StorageLockError))
        return cls(
            error.message,
            ErrorCode.from_value(error.error_code),
            layer,
            retryable=retryable,
            context=error.details,
        )

    def to_payload(self) -> dict[str, Any]:
        """Return a serializable payload representing the error."""

        return {
            "code": self.code.value,
            "message": self.message,
            "layer": self.layer,
            "retryable": self.retryable,
            "context": dict(self.context),
        }


__all__ = ["DomainError"]
