"""Bar read and refresh routes."""

from fastapi import APIRouter, Depends, Query, Request

from barcache.core.models.granularity import parse_granularity
from barcache.core.runtime import BarCacheRuntime
from barcache.web.models import APIResponse, BarsPayload
from barcache.web.utils import get_request_id, get_runtime

router = APIRouter()


@router.get("/bars/{symbol}", response_model=APIResponse)
async def get_bars(
    request: Request,
    symbol: str,
    granularity: str = Query("1d", description="Stored or derived granularity, e.g. 5m, 3h, 1d"),
    extended: bool = Query(False, description="Include pre- and post-market bars"),
    limit: int | None = Query(None, ge=1, le=10000, description="Only return the newest N bars"),
    runtime: BarCacheRuntime = Depends(get_runtime),
) -> APIResponse:
    """Serve cached bars; a miss queues collection and answers 503 with Retry-After."""

    series = await runtime.bars.get_bars(symbol, granularity, include_extended=extended, auto_register=True)
    bars = list(series.bars)[-limit:] if limit else list(series.bars)
    payload = BarsPayload(
        symbol=series.symbol,
        granularity=series.granularity,
        source_granularity=series.source_granularity,
        multiplier=series.multiplier,
        count=len(bars),
        bars=bars,
        metadata=series.metadata,
    )
    return APIResponse(success=True, data=payload.model_dump(mode="json"), request_id=get_request_id(request))


@router.post("/collect/{symbol}", response_model=APIResponse, status_code=202)
async def collect_symbol(
    request: Request,
    symbol: str,
    granularity: str | None = Query(None, description="Only refresh one stored granularity"),
    runtime: BarCacheRuntime = Depends(get_runtime),
) -> APIResponse:
    """Queue an on-demand refresh for a known symbol."""

    target = parse_granularity(granularity) if granularity else None
    queued = runtime.bars.enqueue(symbol, target)
    return APIResponse(
        success=True,
        data={"queued": queued, "depth": len(runtime.queue)},
        message="queued" if queued else "already queued",
        request_id=get_request_id(request),
    )
