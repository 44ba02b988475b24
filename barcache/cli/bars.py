"""Read and collection commands."""

from __future__ import annotations

from collections.abc import Mapping

import typer

from barcache.core.exceptions import BarCacheError
from barcache.core.models.bars import Bar
from barcache.core.models.granularity import Granularity, parse_granularity
from barcache.core.models.ingestion import JobType
from barcache.core.models.symbols import normalize_symbol
from barcache.core.runtime import BarCacheRuntime
from barcache.core.services.gap_reconciler import GapRunReport

from . import utils
from .constants import VALIDATION_EXIT_CODE
from .utils import emit_error, exit_for, parse_symbols, prepare_output

BAR_COLUMNS = ["symbol", "granularity", "ts", "open", "high", "low", "close", "volume", "source"]
RUN_COLUMNS = ["granularity", "job_type", "status", "symbols", "inserted", "updated", "error"]
GAP_COLUMNS = ["mode", "granularity", "symbol", "stored", "expected"]


def register(app: typer.Typer) -> None:
    app.command("bars")(bars_command)
    app.command("collect")(collect_command)
    app.command("gaps")(gaps_command)


def bars_command(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Symbol to read."),
    granularity: str = typer.Option("1d", "--granularity", "-g", help="Stored or derived granularity."),
    extended: bool = typer.Option(False, "--extended", help="Include pre- and post-market bars."),
    limit: int | None = typer.Option(None, "--limit", "-n", min=1, help="Only show the newest N bars."),
) -> None:
    """Serve cached bars the way the HTTP layer would."""

    formatter, stream, stack, _ = prepare_output(ctx)

    async def _read(runtime: BarCacheRuntime):
        return await runtime.bars.get_bars(symbol, granularity, include_extended=extended)

    try:
        series = utils.run_with_runtime(ctx, _read)
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    bars = list(series.bars)[-limit:] if limit else list(series.bars)
    rows = [_bar_row(series.symbol, series.granularity, bar) for bar in bars]
    try:
        formatter.render(rows, stream=stream, columns=BAR_COLUMNS)
    finally:
        stack.close()


def collect_command(
    ctx: typer.Context,
    granularity: str = typer.Argument(..., help="Stored granularity to ingest."),
    symbols: str | None = typer.Option(None, "--symbols", help="Comma separated symbols (default: all active)."),
    lookback_days: int | None = typer.Option(None, "--lookback-days", min=1, help="Override the lookback window."),
) -> None:
    """Run one audited ingestion for a granularity now."""

    formatter, stream, stack, _ = prepare_output(ctx)
    target = _parse_granularity(granularity)
    requested = [normalize_symbol(s) for s in parse_symbols(symbols)] if symbols else None

    async def _collect(runtime: BarCacheRuntime):
        if requested is None:
            records = runtime.store.active_symbols()
        else:
            resolved = runtime.store.resolve_symbols(requested)
            missing = [s for s in requested if s not in resolved]
            if missing:
                emit_error(f"Unknown symbols: {', '.join(missing)}", "SYMBOL_NOT_FOUND", details={"symbols": missing})
                raise typer.Exit(code=VALIDATION_EXIT_CODE)
            records = [resolved[s] for s in requested]
        return await runtime.ingestion.collect(
            target, records, job_type=JobType.ON_DEMAND.value, lookback_days=lookback_days
        )

    try:
        outcome = utils.run_with_runtime(ctx, _collect)
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    run = outcome.run
    row = {
        "granularity": run.granularity,
        "job_type": run.job_type,
        "status": run.status.value,
        "symbols": f"{run.symbols_processed}/{run.symbols_requested}",
        "inserted": run.bars_inserted,
        "updated": run.bars_updated,
        "error": run.error_message,
    }
    try:
        formatter.render([row], stream=stream, columns=RUN_COLUMNS)
    finally:
        stack.close()


def gaps_command(
    ctx: typer.Context,
    mode: str = typer.Option("report", "--mode", help="report, systematic, spot-check or refill."),
    granularity: str | None = typer.Option(None, "--granularity", "-g", help="Limit the report to one granularity."),
) -> None:
    """Report or backfill bar-count shortfalls."""

    formatter, stream, stack, _ = prepare_output(ctx)
    normalized = mode.strip().lower()
    if normalized not in {"report", "systematic", "spot-check", "refill"}:
        stack.close()
        raise typer.BadParameter(f"Unsupported mode '{mode}'", param_hint="--mode")
    target = _parse_granularity(granularity) if granularity else None

    async def _gaps(runtime: BarCacheRuntime) -> list[Mapping[str, object]]:
        if normalized == "report":
            granularities = [target] if target else list(Granularity)
            return [
                _gap_row("report", gap.granularity, gap.symbol, gap.stored, gap.expected)
                for g in granularities
                for gap in runtime.gaps.find_gaps(g)
            ]
        if normalized == "systematic":
            report = await runtime.gaps.run_systematic()
        elif normalized == "spot-check":
            report = await runtime.gaps.run_spot_check()
        else:
            report = await runtime.gaps.run_daily_refill(runtime.config.ingestion.refill_min_daily_bars)
        return _report_rows(report)

    try:
        rows = utils.run_with_runtime(ctx, _gaps)
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    try:
        formatter.render(rows, stream=stream, columns=GAP_COLUMNS)
    finally:
        stack.close()


def _parse_granularity(value: str) -> Granularity:
    try:
        return parse_granularity(value)
    except BarCacheError as exc:
        raise typer.BadParameter(exc.message, param_hint="granularity") from exc


def _bar_row(symbol: str, granularity: str, bar: Bar) -> Mapping[str, object]:
    return {
        "symbol": symbol,
        "granularity": granularity,
        "ts": bar.ts,
        "open": bar.open,
        "high": bar.high,
        "low": bar.low,
        "close": bar.close,
        "volume": bar.volume,
        "source": bar.source,
    }


def _gap_row(mode: str, granularity: Granularity, symbol: str, stored: int, expected: int) -> Mapping[str, object]:
    return {"mode": mode, "granularity": granularity.value, "symbol": symbol, "stored": stored, "expected": expected}


def _report_rows(report: GapRunReport) -> list[Mapping[str, object]]:
    return [_gap_row(report.mode, gap.granularity, gap.symbol, gap.stored, gap.expected) for gap in report.gaps]


__all__ = ["bars_command", "collect_command", "gaps_command", "register"]
