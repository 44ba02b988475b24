"""HTTP routes."""

from barcache.web.routes.bars import router as bars_router
from barcache.web.routes.health import router as health_router
from barcache.web.routes.symbols import router as symbols_router

__all__ = ["bars_router", "health_router", "symbols_router"]
