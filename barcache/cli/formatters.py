"""Rendering of bar, run, gap and symbol rows for CLI commands."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TextIO

from rich.box import SIMPLE
from rich.console import Console
from rich.table import Table
from rich.text import Text

PRICE_COLUMNS = frozenset({"open", "high", "low", "close", "vwap"})
COUNT_COLUMNS = frozenset({"volume", "trade_count", "count", "stored", "expected", "inserted", "updated", "symbol_id"})

Row = Mapping[str, object]


def format_price(value: float) -> str:
    """Two decimals, four for sub-dollar prices."""

    return f"{value:,.4f}" if abs(value) < 1 else f"{value:,.2f}"


def format_count(value: float) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    return f"{int(value):,}"


def format_timestamp(value: datetime) -> str:
    """UTC wall time; seconds are shown only when a bar does not start on the minute."""

    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%d %H:%M" if value.second == 0 else "%Y-%m-%d %H:%M:%S")


def json_default(value: object) -> object:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _columns_for(rows: Sequence[Row], columns: Sequence[str] | None) -> list[str]:
    if columns:
        return list(columns)
    if rows:
        return list(rows[0].keys())
    return []


class OutputFormatter:
    """Base class for CLI output formatters."""

    name: str

    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class TableFormatter(OutputFormatter):
    """Rich table with right-aligned prices and counts.

    Gap rows whose ``stored`` count is below ``expected`` are highlighted.
    """

    name: str = "table"
    no_color: bool = False

    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        console = Console(file=stream, color_system=None if self.no_color else "auto", no_color=self.no_color)
        resolved = _columns_for(rows, columns)

        table = Table(box=SIMPLE, show_lines=False)
        for column in resolved:
            numeric = column in PRICE_COLUMNS or column in COUNT_COLUMNS
            table.add_column(column, justify="right" if numeric else "left", header_style="" if self.no_color else "bold")
        for row in rows:
            table.add_row(*(self._cell(row, column) for column in resolved))

        if resolved:
            console.print(table)
        if not rows:
            console.print("No data available.")

    def _cell(self, row: Row, column: str) -> Text:
        value = row.get(column)
        text = Text(self._format(column, value))
        if column == "stored" and not self.no_color and self._short(row):
            text.stylize("red")
        return text

    @staticmethod
    def _format(column: str, value: object) -> str:
        if value is None:
            return "-"
        if isinstance(value, bool):
            return "yes" if value else "no"
        if isinstance(value, datetime):
            return format_timestamp(value)
        if isinstance(value, Enum):
            return str(value.value)
        if isinstance(value, (int, float)):
            if column in PRICE_COLUMNS:
                return format_price(float(value))
            if column in COUNT_COLUMNS:
                return format_count(value)
        return str(value)

    @staticmethod
    def _short(row: Row) -> bool:
        stored, expected = row.get("stored"), row.get("expected")
        return isinstance(stored, int) and isinstance(expected, int) and stored < expected


@dataclass(slots=True)
class JSONLFormatter(OutputFormatter):
    """One JSON object per row; timestamps as ISO-8601 and enums as their codes."""

    name: str = "jsonl"

    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        for row in rows:
            record = {column: row.get(column) for column in columns} if columns else dict(row)
            json.dump(record, stream, ensure_ascii=False, default=json_default)
            stream.write("\n")
        stream.flush()


def create_formatter(name: str, *, no_color: bool = False) -> OutputFormatter:
    normalized = name.strip().lower()
    if normalized == "table":
        return TableFormatter(no_color=no_color)
    if normalized == "jsonl":
        return JSONLFormatter()
    raise ValueError(f"Unsupported format '{name}'. Available formats: table, jsonl.")


__all__ = [
    "COUNT_COLUMNS",
    "PRICE_COLUMNS",
    "JSONLFormatter",
    "OutputFormatter",
    "TableFormatter",
    "create_formatter",
    "format_count",
    "format_price",
    "format_timestamp",
    "json_default",
]
