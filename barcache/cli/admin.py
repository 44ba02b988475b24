"""Service and statistics commands."""

from __future__ import annotations

from collections.abc import Mapping

import typer

from barcache.core.exceptions import BarCacheError
from barcache.core.runtime import BarCacheRuntime

from . import utils
from .utils import exit_for, prepare_output

STATS_COLUMNS = ["granularity", "count", "oldest", "latest"]


def register(app: typer.Typer) -> None:
    app.command("stats")(stats_command)
    app.command("serve")(serve_command)


def stats_command(ctx: typer.Context) -> None:
    """Show stored bar counts per granularity."""

    formatter, stream, stack, _ = prepare_output(ctx)

    async def _stats(runtime: BarCacheRuntime) -> list[Mapping[str, object]]:
        return list(runtime.bars.stats()["bars"])

    try:
        rows = utils.run_with_runtime(ctx, _stats)
    except BarCacheError as error:
        stack.close()
        raise exit_for(error) from error

    try:
        formatter.render(rows, stream=stream, columns=STATS_COLUMNS)
    finally:
        stack.close()


def serve_command(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address."),
    port: int = typer.Option(8000, "--port", help="Bind port."),
) -> None:
    """Run the HTTP API with the ingestion scheduler."""

    import uvicorn

    from barcache.web.app import create_app

    config = utils.load_config(ctx)
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


__all__ = ["register", "serve_command", "stats_command"]
