"""Stable error codes exposed to outward surfaces."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes shared by the CLI and web layers."""

    VENDOR = "VENDOR_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    NETWORK = "NETWORK_ERROR"
    ALL_VENDORS_FAILED = "ALL_VENDORS_FAILED"
    VALIDATION = "VALIDATION_ERROR"
    CACHE = "CACHE_ERROR"
    STORAGE_LOCK = "STORAGE_LOCK_ERROR"
    SYMBOL_INVALID = "SYMBOL_INVALID"
    SYMBOL_NOT_FOUND = "SYMBOL_NOT_FOUND"
    SYMBOL_INACTIVE = "SYMBOL_INACTIVE"
    STALE_OR_MISSING = "STALE_OR_MISSING"
    CONFIGURATION = "CONFIGURATION_ERROR"
    GENERAL = "GENERAL_ERROR"

    @classmethod
    def from_value(cls, value: str) -> "ErrorCode":
        try:
            return cls(value)
        except ValueError:
            return cls.GENERAL


__all__ = ["ErrorCode"]
