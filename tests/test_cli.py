"""Tests for the barcache command line interface."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import duckdb
import pytest
import typer
from helpers import FixedClock, StubVendor, make_bars
from prometheus_client import CollectorRegistry
from typer.testing import CliRunner

from barcache.cli import utils
from barcache.cli.constants import (
    DATA_UNAVAILABLE_EXIT_CODE,
    PROVIDER_EXIT_CODE,
    SYSTEM_EXIT_CODE,
    VALIDATION_EXIT_CODE,
)
from barcache.cli.main import create_app
from barcache.core.config.settings import BarCacheConfig
from barcache.core.data.storage.cache_store import CacheStore
from barcache.core.exceptions import (
    AllVendorsExhaustedError,
    CacheError,
    StaleOrMissingError,
    SymbolNotFoundError,
)
from barcache.core.logging import configure_logging
from barcache.core.models.granularity import Granularity
from barcache.core.monitoring import MetricsCollector
from barcache.core.runtime import BarCacheRuntime

SESSION_START = datetime(2024, 3, 6, 14, 30, tzinfo=UTC)


def _bars(symbols, granularity):
    return {symbol: make_bars(SESSION_START, 30) for symbol in symbols}


def _known(symbol: str) -> bool:
    return symbol != "ZZZZ"


class CliEnv:
    def __init__(self, tmp_path: Path, vendor: StubVendor) -> None:
        self.database = str(tmp_path / "bars.duckdb")
        self.vendor = vendor
        self.clock = FixedClock(datetime(2024, 3, 6, 15, 0, tzinfo=UTC))
        self.metrics = MetricsCollector(registry=CollectorRegistry())
        self.runner = CliRunner()
        self.app = create_app()

    def build_runtime(self, ctx: typer.Context) -> BarCacheRuntime:
        return BarCacheRuntime.build(
            BarCacheConfig(),
            vendors=[self.vendor],
            connection=duckdb.connect(self.database),
            metrics=self.metrics,
            clock=self.clock,
        )

    def seed_symbol(self, symbol: str) -> None:
        connection = duckdb.connect(self.database)
        try:
            CacheStore(connection, clock=self.clock).insert_symbol(symbol)
        finally:
            connection.close()

    def invoke(self, *args: str):
        return self.runner.invoke(self.app, list(args))

    def invoke_jsonl(self, tmp_path: Path, *args: str) -> tuple[object, list[dict]]:
        out = tmp_path / "out.jsonl"
        result = self.invoke("--format", "jsonl", "--output", str(out), *args)
        rows = [json.loads(line) for line in out.read_text().splitlines()] if out.exists() else []
        return result, rows


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    configure_logging("WARNING")


@pytest.fixture
def cli(tmp_path, monkeypatch) -> CliEnv:
    env = CliEnv(tmp_path, StubVendor("primary", _bars, valid=_known))
    monkeypatch.setattr(utils, "get_runtime", env.build_runtime)
    return env


def test_symbols_add_registers_valid_and_reports_invalid(cli, tmp_path):
    result, rows = cli.invoke_jsonl(tmp_path, "symbols", "add", "aapl,ZZZZ")

    assert result.exit_code == 0, result.output
    assert [(row["symbol"], row["status"]) for row in rows] == [("AAPL", "registered"), ("ZZZZ", "SYMBOL_INVALID")]
    # The registration drain collected every stored granularity.
    assert len(cli.vendor.calls) == 11

    result, rows = cli.invoke_jsonl(tmp_path, "symbols", "list")
    assert [row["symbol"] for row in rows] == ["AAPL"]


def test_symbols_revalidate_deactivates_rejected_symbols(cli, tmp_path):
    cli.seed_symbol("AAPL")
    cli.seed_symbol("ZZZZ")
    cli.invoke("collect", "1d", "--symbols", "ZZZZ")

    result, rows = cli.invoke_jsonl(tmp_path, "symbols", "revalidate")

    assert result.exit_code == 0, result.output
    assert [(row["symbol"], row["active"], row["status"]) for row in rows] == [
        ("AAPL", True, "valid"),
        ("ZZZZ", False, "deactivated"),
    ]
    connection = duckdb.connect(cli.database)
    try:
        store = CacheStore(connection, clock=cli.clock)
        record = store.get_symbol("ZZZZ")
        assert store.count_bars(record.symbol_id, Granularity.DAY_1) == 0
    finally:
        connection.close()

    result, rows = cli.invoke_jsonl(tmp_path, "symbols", "revalidate", "brk-b")
    assert rows == [{"symbol": "BRK.B", "symbol_id": None, "active": None, "status": "SYMBOL_NOT_FOUND"}]


def test_bars_command_reads_cache(cli, tmp_path):
    cli.seed_symbol("AAPL")
    cli.invoke("collect", "1m", "--symbols", "AAPL")

    result, rows = cli.invoke_jsonl(tmp_path, "bars", "AAPL", "-g", "3m", "-n", "2")

    assert result.exit_code == 0, result.output
    assert len(rows) == 2
    assert rows[0]["granularity"] == "3m"
    assert rows[-1]["close"] == 130


def test_bars_unknown_symbol_is_a_validation_error(cli):
    result = cli.invoke("bars", "ZZZZ")

    assert result.exit_code == VALIDATION_EXIT_CODE
    assert "SYMBOL_NOT_FOUND" in result.output


def test_bars_missing_data_exit_code(cli):
    cli.seed_symbol("AAPL")
    cli.vendor = StubVendor("primary", {}, valid=_known)

    result = cli.invoke("bars", "AAPL", "-g", "5m")

    assert result.exit_code == DATA_UNAVAILABLE_EXIT_CODE
    assert "STALE_OR_MISSING" in result.output


def test_collect_command(cli, tmp_path):
    cli.seed_symbol("AAPL")

    result, rows = cli.invoke_jsonl(tmp_path, "collect", "1d", "--symbols", "AAPL", "--lookback-days", "3")

    assert result.exit_code == 0, result.output
    assert rows == [
        {
            "granularity": "1d",
            "job_type": "on_demand",
            "status": "completed",
            "symbols": "1/1",
            "inserted": 30,
            "updated": 0,
            "error": None,
        }
    ]


def test_collect_unknown_symbol(cli):
    result = cli.invoke("collect", "1d", "--symbols", "NOPE")
    assert result.exit_code == VALIDATION_EXIT_CODE


def test_collect_rejects_derived_granularity(cli):
    result = cli.invoke("collect", "3m")
    assert result.exit_code == 2


def test_gap_report(cli, tmp_path):
    cli.seed_symbol("AAPL")

    result, rows = cli.invoke_jsonl(tmp_path, "gaps", "--mode", "report", "-g", "1d")

    assert result.exit_code == 0, result.output
    assert rows == [{"mode": "report", "granularity": "1d", "symbol": "AAPL", "stored": 0, "expected": 250}]
    assert cli.vendor.calls == []


def test_gap_invalid_mode(cli):
    assert cli.invoke("gaps", "--mode", "everything").exit_code == 2


def test_queue_add_without_drain(cli, tmp_path):
    cli.seed_symbol("AAPL")

    result, rows = cli.invoke_jsonl(tmp_path, "queue", "add", "AAPL", "-g", "1d", "--no-drain")

    assert result.exit_code == 0, result.output
    assert rows == [{"request": "AAPL:1d", "queued": True}]
    assert cli.vendor.calls == []


def test_stats_table(cli):
    cli.seed_symbol("AAPL")
    cli.invoke("collect", "1m", "--symbols", "AAPL")

    result = cli.invoke("--no-color", "stats")

    assert result.exit_code == 0, result.output
    assert "1m" in result.output
    assert "30" in result.output


def test_invalid_format(cli):
    assert cli.invoke("--format", "xml", "stats").exit_code == 2


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (SymbolNotFoundError("ZZZZ"), VALIDATION_EXIT_CODE),
        (AllVendorsExhaustedError("nothing"), PROVIDER_EXIT_CODE),
        (StaleOrMissingError("old", "AAPL", "1d"), DATA_UNAVAILABLE_EXIT_CODE),
        (CacheError("disk"), SYSTEM_EXIT_CODE),
    ],
)
def test_exit_codes(error, code):
    assert utils.exit_for(error).exit_code == code
