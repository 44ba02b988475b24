"""Symbol registration routes."""

from fastapi import APIRouter, Depends, Request

from barcache.core.runtime import BarCacheRuntime
from barcache.web.models import APIResponse, SymbolRequest
from barcache.web.utils import get_request_id, get_runtime

router = APIRouter()


@router.get("/symbols", response_model=APIResponse)
async def list_symbols(request: Request, runtime: BarCacheRuntime = Depends(get_runtime)) -> APIResponse:
    symbols = [record.symbol for record in runtime.store.active_symbols()]
    return APIResponse(success=True, data={"symbols": symbols, "count": len(symbols)}, request_id=get_request_id(request))


@router.post("/symbols", response_model=APIResponse, status_code=201)
async def add_symbol(
    request: Request,
    body: SymbolRequest,
    runtime: BarCacheRuntime = Depends(get_runtime),
) -> APIResponse:
    """Validate a symbol with the vendors and register it for collection."""

    record = await runtime.bars.request_symbol(body.symbol)
    return APIResponse(
        success=True,
        data={"symbol": record.symbol, "symbol_id": record.symbol_id, "active": record.is_active},
        message="registered",
        request_id=get_request_id(request),
    )
