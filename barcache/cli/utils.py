"""Utility helpers shared across CLI commands."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO, TypeVar

import typer

from barcache.core.config.settings import BarCacheConfig, ConfigManager
from barcache.core.exceptions import (
    AllVendorsExhaustedError,
    BarCacheError,
    ConfigurationError,
    DataValidationError,
    StaleOrMissingError,
    SymbolInactiveError,
    SymbolInvalidError,
    SymbolNotFoundError,
    VendorError,
)
from barcache.core.runtime import BarCacheRuntime

from .constants import DATA_UNAVAILABLE_EXIT_CODE, PROVIDER_EXIT_CODE, SYSTEM_EXIT_CODE, VALIDATION_EXIT_CODE
from .formatters import OutputFormatter, create_formatter

T = TypeVar("T")


@dataclass(slots=True)
class CLIOptions:
    """Resolved options derived from the Typer context."""

    format: str = "table"
    output_path: Path | None = None
    no_color: bool = False
    config_path: Path | None = None


def get_cli_options(ctx: typer.Context) -> CLIOptions:
    ctx.ensure_object(dict)
    data = ctx.obj or {}
    return CLIOptions(
        format=str(data.get("format", "table")),
        output_path=data.get("output_path"),
        no_color=bool(data.get("no_color", False)),
        config_path=data.get("config_path"),
    )


def load_config(ctx: typer.Context) -> BarCacheConfig:
    options = get_cli_options(ctx)
    try:
        return ConfigManager(options.config_path).get_config()
    except ConfigurationError as error:
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from error


def get_runtime(ctx: typer.Context) -> BarCacheRuntime:
    """Factory hook returning a wired :class:`BarCacheRuntime`."""

    return BarCacheRuntime.build(load_config(ctx))


def run_with_runtime(ctx: typer.Context, action: Callable[[BarCacheRuntime], Awaitable[T]]) -> T:
    """Build a runtime, run ``action`` on a fresh event loop and always close it."""

    runtime = get_runtime(ctx)

    async def _main() -> T:
        try:
            return await action(runtime)
        finally:
            await runtime.aclose()

    return asyncio.run(_main())


def prepare_output(ctx: typer.Context) -> tuple[OutputFormatter, TextIO, ExitStack, CLIOptions]:
    """Resolve formatter and writable stream for the current command."""

    options = get_cli_options(ctx)
    try:
        formatter = create_formatter(options.format, no_color=options.no_color)
    except ValueError as exc:  # pragma: no cover - validated at callback
        emit_error(str(exc), "INVALID_FORMAT")
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

    stack = ExitStack()
    stream: TextIO
    if options.output_path is not None:
        try:
            stream = stack.enter_context(open(options.output_path, "w", encoding="utf-8"))
        except OSError as exc:
            stack.close()
            emit_error(f"Unable to open '{options.output_path}': {exc}", "OUTPUT_WRITE_ERROR")
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc
    else:
        stream = sys.stdout

    return formatter, stream, stack, options


def emit_error(message: str, code: str, *, details: Mapping[str, object] | None = None) -> None:
    """Print a structured error payload to stderr."""

    payload: dict[str, object] = {"code": code, "message": message}
    if details:
        payload["details"] = _sanitize_details(details)
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str), err=True)


def exit_for(error: BarCacheError) -> typer.Exit:
    """Report ``error`` on stderr and return the matching exit."""

    emit_error(error.message, error.error_code, details=error.details)
    if isinstance(
        error,
        (DataValidationError, ConfigurationError, SymbolInvalidError, SymbolNotFoundError, SymbolInactiveError),
    ):
        return typer.Exit(code=VALIDATION_EXIT_CODE)
    if isinstance(error, (VendorError, AllVendorsExhaustedError)):
        return typer.Exit(code=PROVIDER_EXIT_CODE)
    if isinstance(error, StaleOrMissingError):
        return typer.Exit(code=DATA_UNAVAILABLE_EXIT_CODE)
    return typer.Exit(code=SYSTEM_EXIT_CODE)


def parse_symbols(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _sanitize_details(details: Mapping[str, object]) -> Mapping[str, object]:
    sanitized: dict[str, object] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            sanitized[key] = [str(item) for item in value]
        else:
            sanitized[key] = str(value)
    return sanitized


__all__ = [
    "CLIOptions",
    "emit_error",
    "exit_for",
    "get_cli_options",
    "get_runtime",
    "load_config",
    "parse_symbols",
    "prepare_output",
    "run_with_runtime",
]
