"""Tests for CLI table and JSON Lines rendering."""

import io
import json
from datetime import UTC, datetime

import pytest

from barcache.cli.formatters import (
    JSONLFormatter,
    TableFormatter,
    create_formatter,
    format_count,
    format_price,
    format_timestamp,
)
from barcache.core.models.granularity import Granularity

BAR_ROW = {
    "symbol": "AAPL",
    "granularity": "5m",
    "ts": datetime(2024, 3, 6, 14, 30, tzinfo=UTC),
    "open": 171.5,
    "high": 172.0,
    "low": 0.5123,
    "close": 171.25,
    "volume": 1250000.0,
    "source": "alpaca",
}


@pytest.mark.parametrize(
    ("value", "expected"),
    [(171.5, "171.50"), (1234.567, "1,234.57"), (0.51234, "0.5123")],
)
def test_format_price(value, expected):
    assert format_price(value) == expected


def test_format_count_and_timestamp():
    assert format_count(1250000.0) == "1,250,000"
    assert format_count(12.5) == "12.50"
    assert format_timestamp(datetime(2024, 3, 6, 14, 30, tzinfo=UTC)) == "2024-03-06 14:30"
    assert format_timestamp(datetime(2024, 3, 6, 14, 30, 15, tzinfo=UTC)) == "2024-03-06 14:30:15"


def test_table_renders_bar_columns():
    stream = io.StringIO()
    TableFormatter(no_color=True).render([BAR_ROW], stream=stream, columns=["ts", "open", "low", "volume"])

    output = stream.getvalue()
    assert "2024-03-06 14:30" in output
    assert "171.50" in output
    assert "0.5123" in output
    assert "1,250,000" in output


def test_table_empty_rows_still_prints_header():
    stream = io.StringIO()
    TableFormatter(no_color=True).render([], stream=stream, columns=["mode", "stored"])

    output = stream.getvalue()
    assert "stored" in output
    assert "No data available." in output


def test_table_formats_flags_and_missing_values():
    stream = io.StringIO()
    row = {"symbol": "MSFT", "symbol_id": 1200, "active": False, "status": None}
    TableFormatter(no_color=True).render([row], stream=stream)

    output = stream.getvalue()
    assert "1,200" in output
    assert "no" in output
    assert "-" in output


def test_jsonl_serialises_timestamps_and_enums():
    stream = io.StringIO()
    row = dict(BAR_ROW, granularity=Granularity.MINUTE_5)
    JSONLFormatter().render([row], stream=stream, columns=["ts", "granularity", "close"])

    assert json.loads(stream.getvalue()) == {"ts": "2024-03-06T14:30:00+00:00", "granularity": "5m", "close": 171.25}


def test_create_formatter_rejects_unknown_name():
    assert isinstance(create_formatter(" JSONL "), JSONLFormatter)
    with pytest.raises(ValueError, match="table, jsonl"):
        create_formatter("xml")
