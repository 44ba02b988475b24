"""Symbol registration and collection-queue commands."""

from __future__ import annotations

from collections.abc import Mapping

import typer

from barcache.core.exceptions import BarCacheError
from barcache.core.models.granularity import parse_granularity
from barcache.core.models.symbols import normalize_symbol
from barcache.core.runtime import BarCacheRuntime

from . import utils
from .utils import exit_for, parse_symbols, prepare_output

symbols_app = typer.Typer(help="Manage cached symbols.")
queue_app = typer.Typer(help="On-demand collection queue.")

SYMBOL_COLUMNS = ["symbol", "symbol_id", "active", "status"]
QUEUE_COLUMNS = ["request", "queued"]


def register(app: typer.Typer) -> None:
    app.add_typer(symbols_app, name="symbols", help="Register and list symbols")
    app.add_typer(queue_app, name="queue", help="Queue on-demand collection")


@symbols_app.command("add")
def add_command(
    ctx: typer.Context,
    symbols: str = typer.Argument(..., help="Comma separated symbols to register."),
) -> None:
    """Validate symbols with the vendors and register them for collection."""

    formatter, stream, stack, _ = prepare_output(ctx)
    requested = parse_symbols(symbols)

    async def _add(runtime: BarCacheRuntime) -> list[Mapping[str, object]]:
        rows = []
        for symbol in requested:
            try:
                record = await runtime.bars.request_symbol(symbol)
            except BarCacheError as error:
                rows.append({"symbol": symbol.upper(), "symbol_id": None, "active": False, "status": error.error_code})
                continue
            rows.append(
                {"symbol": record.symbol, "symbol_id": record.symbol_id, "active": record.is_active, "status": "registered"}
            )
        await runtime.queue.drain()
        return rows

    try:
        rows = utils.run_with_runtime(ctx, _add)
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    try:
        formatter.render(rows, stream=stream, columns=SYMBOL_COLUMNS)
    finally:
        stack.close()


@symbols_app.command("list")
def list_command(ctx: typer.Context) -> None:
    """List active symbols."""

    formatter, stream, stack, _ = prepare_output(ctx)

    async def _list(runtime: BarCacheRuntime) -> list[Mapping[str, object]]:
        return [
            {"symbol": r.symbol, "symbol_id": r.symbol_id, "active": r.is_active, "status": None}
            for r in runtime.store.active_symbols()
        ]

    rows = utils.run_with_runtime(ctx, _list)
    try:
        formatter.render(rows, stream=stream, columns=SYMBOL_COLUMNS)
    finally:
        stack.close()


@symbols_app.command("revalidate")
def revalidate_command(
    ctx: typer.Context,
    symbols: str | None = typer.Argument(None, help="Comma separated symbols (default: all active)."),
) -> None:
    """Re-check symbols with the vendors and deactivate the ones every vendor rejects."""

    formatter, stream, stack, _ = prepare_output(ctx)

    async def _revalidate(runtime: BarCacheRuntime) -> list[Mapping[str, object]]:
        if symbols:
            requested = parse_symbols(symbols)
        else:
            requested = [record.symbol for record in runtime.store.active_symbols()]
        rows = []
        for symbol in requested:
            try:
                valid = await runtime.bars.revalidate_symbol(symbol)
            except BarCacheError as error:
                rows.append({"symbol": normalize_symbol(symbol), "symbol_id": None, "active": None, "status": error.error_code})
                continue
            record = runtime.store.get_symbol(normalize_symbol(symbol))
            rows.append(
                {
                    "symbol": record.symbol,
                    "symbol_id": record.symbol_id,
                    "active": record.is_active,
                    "status": "valid" if valid else "deactivated",
                }
            )
        return rows

    try:
        rows = utils.run_with_runtime(ctx, _revalidate)
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    try:
        formatter.render(rows, stream=stream, columns=SYMBOL_COLUMNS)
    finally:
        stack.close()


@queue_app.command("add")
def queue_add_command(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Known symbol to refresh."),
    granularity: str | None = typer.Option(None, "--granularity", "-g", help="Only refresh one granularity."),
    drain: bool = typer.Option(True, "--drain/--no-drain", help="Drain the queue before exiting."),
) -> None:
    """Queue an on-demand refresh."""

    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        target = parse_granularity(granularity) if granularity else None
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    async def _queue(runtime: BarCacheRuntime) -> Mapping[str, object]:
        queued = runtime.bars.enqueue(symbol, target)
        key = runtime.queue.keys()[-1] if queued else symbol.upper()
        if drain:
            await runtime.queue.drain()
        return {"request": key, "queued": queued}

    try:
        row = utils.run_with_runtime(ctx, _queue)
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    try:
        formatter.render([row], stream=stream, columns=QUEUE_COLUMNS)
    finally:
        stack.close()


__all__ = [
    "add_command",
    "list_command",
    "queue_add_command",
    "queue_app",
    "register",
    "revalidate_command",
    "symbols_app",
]
