"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from barcache import __version__
from barcache.core.config.settings import BarCacheConfig, ConfigManager
from barcache.core.exceptions import (
    AllVendorsExhaustedError,
    BarCacheError,
    ConfigurationError,
    DataValidationError,
    DomainError,
    StaleOrMissingError,
    SymbolInactiveError,
    SymbolInvalidError,
    SymbolNotFoundError,
    VendorError,
)
from barcache.core.logging import configure_logging, logger
from barcache.core.runtime import BarCacheRuntime
from barcache.web.metrics import router as metrics_router
from barcache.web.models import ErrorResponse
from barcache.web.routes import bars_router, health_router, symbols_router
from barcache.web.utils import get_request_id


def status_for(error: BarCacheError) -> int:
    if isinstance(error, StaleOrMissingError):
        return 503
    if isinstance(error, (SymbolInvalidError, SymbolNotFoundError, SymbolInactiveError)):
        return 404
    if isinstance(error, (DataValidationError, ConfigurationError)):
        return 400
    if isinstance(error, (VendorError, AllVendorsExhaustedError)):
        return 502
    return 500


def create_app(config: BarCacheConfig | None = None, *, runtime: BarCacheRuntime | None = None) -> FastAPI:
    """Build the API; a prebuilt ``runtime`` is used as-is and not started by the app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if runtime is not None:
            yield
            return
        resolved = config or ConfigManager().get_config()
        configure_logging(resolved.logging.level, file_output=bool(resolved.logging.file), file_path=resolved.logging.file)
        owned = BarCacheRuntime.build(resolved)
        app.state.runtime = owned
        owned.start()
        try:
            yield
        finally:
            await owned.aclose()

    app = FastAPI(
        title="barcache",
        description="Cached OHLCV bars served in front of rate-limited market data vendors",
        version=__version__,
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    app.include_router(bars_router, tags=["bars"])
    app.include_router(symbols_router, tags=["symbols"])
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router)
    _setup_exception_handlers(app)
    return app


def _setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BarCacheError)
    async def barcache_exception_handler(request: Request, exc: BarCacheError) -> JSONResponse:
        status = status_for(exc)
        headers = None
        if isinstance(exc, StaleOrMissingError):
            headers = {"Retry-After": str(exc.retry_after)}
        if status >= 500 and status != 503:
            logger.error("request_failed", path=request.url.path, error_code=exc.error_code, error=exc.message)
        domain = DomainError.from_error(exc, layer="web")
        body = ErrorResponse(
            error=domain.code.value,
            message=domain.message,
            details=domain.context,
            retryable=domain.retryable,
            request_id=get_request_id(request),
        )
        return JSONResponse(status_code=status, content=body.model_dump(mode="json"), headers=headers)


__all__ = ["create_app", "status_for"]
