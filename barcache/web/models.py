"""Request and response models for the HTTP API."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from barcache.core.models.bars import Bar


class APIResponse(BaseModel):
    """Standard response envelope."""

    success: bool = Field(..., description="Whether the request succeeded")
    data: Any | None = Field(None, description="Response payload")
    message: str | None = Field(None, description="Human readable message")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    request_id: str | None = Field(None, description="Request id for tracing")


class ErrorResponse(BaseModel):
    """Error envelope."""

    success: bool = False
    error: str = Field(..., description="Error code")
    message: str
    details: dict[str, Any] | None = None
    retryable: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    request_id: str | None = None


class BarsPayload(BaseModel):
    symbol: str
    granularity: str
    source_granularity: str
    multiplier: int
    count: int
    bars: list[Bar]
    metadata: dict[str, Any] = Field(default_factory=dict)


class SymbolRequest(BaseModel):
    symbol: str = Field(..., min_length=1, description="Ticker, e.g. AAPL or BRK.B")
