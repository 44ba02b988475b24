"""Symbols and on-demand collection requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from barcache.core.exceptions import DataValidationError
from barcache.core.models.granularity import Granularity, parse_granularity


def normalize_symbol(raw: str) -> str:
    """Canonical symbol code: upper case with ``-`` class separators mapped to ``.``."""

    symbol = raw.strip().upper().replace("-", ".")
    if not symbol:
        raise DataValidationError("Symbol must not be empty", validation_errors={"symbol": raw})
    return symbol


@dataclass(frozen=True)
class SymbolRecord:
    """A row of the symbol table."""

    symbol_id: int
    symbol: str
    is_active: bool = True
    requested_at: datetime | None = None


@dataclass(frozen=True)
class CollectionRequest:
    """A queued request for one symbol, optionally limited to one granularity."""

    symbol: str
    granularity: Granularity | None = None

    @property
    def key(self) -> str:
        if self.granularity is None:
            return self.symbol
        return f"{self.symbol}:{self.granularity.value}"

    @classmethod
    def parse(cls, key: str) -> "CollectionRequest":
        """Parse ``SYM`` or ``SYM:granularity``."""

        symbol, sep, code = key.partition(":")
        if not sep:
            return cls(normalize_symbol(symbol))
        return cls(normalize_symbol(symbol), parse_granularity(code))

    def expand(self) -> list[tuple[str, Granularity]]:
        """Return one ``(symbol, granularity)`` pair per granularity covered."""

        if self.granularity is not None:
            return [(self.symbol, self.granularity)]
        return [(self.symbol, granularity) for granularity in Granularity]


__all__ = ["CollectionRequest", "SymbolRecord", "normalize_symbol"]
