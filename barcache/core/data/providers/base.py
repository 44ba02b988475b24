"""Vendor client interface shared by every upstream market-data API."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from barcache.core.exceptions import DataValidationError, NetworkError
from barcache.core.logging import logger
from barcache.core.models.bars import Bar
from barcache.core.models.granularity import Granularity

VendorBars = dict[str, list[Bar]]


class VendorClient(ABC):
    """One upstream vendor.

    ``fetch_bars`` always returns a mapping keyed by symbol, even for a
    single-symbol request. Symbols without data are omitted.
    """

    name: str

    @abstractmethod
    async def fetch_bars(
        self,
        symbols: Sequence[str],
        granularity: Granularity,
        start: datetime,
        end: datetime,
    ) -> VendorBars:
        """Fetch bars for ``symbols`` between ``start`` and ``end``."""

    @abstractmethod
    async def validate_symbol(self, symbol: str) -> bool:
        """Return True when the vendor recognises ``symbol``."""

    def is_available(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


def to_vendor_time(value: datetime) -> str:
    """RFC 3339 UTC timestamp with a ``Z`` suffix."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def read_json(vendor: str, response: httpx.Response) -> dict[str, Any]:
    """Decode a successful response body, which must be a JSON object."""

    try:
        payload = response.json()
    except ValueError as exc:
        raise NetworkError(
            f"{vendor} returned a body that is not JSON: {response.text[:200]!r}",
            vendor,
            status_code=response.status_code,
        ) from exc
    if not isinstance(payload, dict):
        raise NetworkError(
            f"{vendor} returned {type(payload).__name__} instead of a JSON object", vendor, status_code=response.status_code
        )
    return payload


def parse_bars(vendor: str, symbol: str, rows: Iterable[Mapping[str, Any]], field_map: Mapping[str, str]) -> list[Bar]:
    """Build validated bars from vendor rows, dropping rows that break OHLC invariants.

    ``field_map`` maps :class:`Bar` field names to vendor keys.
    """

    bars: list[Bar] = []
    for row in rows:
        payload = {name: row.get(key) for name, key in field_map.items() if row.get(key) is not None}
        payload["source"] = vendor
        try:
            bars.append(Bar.model_validate(payload))
        except ValidationError as exc:
            logger.warning("vendor_bar_rejected", vendor=vendor, symbol=symbol, errors=exc.error_count())
    return bars


def check_response_keys(vendor: str, requested: Sequence[str], keys: Iterable[str]) -> None:
    """Reject a batch response containing a key that was not requested."""

    unexpected = sorted(set(keys) - set(requested))
    if unexpected:
        raise DataValidationError(
            f"{vendor} returned data for symbols that were not requested: {', '.join(unexpected[:10])}",
            validation_errors={"unexpected_keys": unexpected, "requested": list(requested)},
            details={"vendor": vendor},
        )


__all__ = ["VendorBars", "VendorClient", "check_response_keys", "parse_bars", "read_json", "to_vendor_time"]
