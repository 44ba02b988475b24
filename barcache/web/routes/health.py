"""Health and statistics routes."""

from fastapi import APIRouter, Depends, Request

from barcache import __version__
from barcache.core.runtime import BarCacheRuntime
from barcache.web.models import APIResponse
from barcache.web.utils import get_request_id, get_runtime

router = APIRouter()


@router.get("/health", response_model=APIResponse)
async def health_check(request: Request, runtime: BarCacheRuntime = Depends(get_runtime)) -> APIResponse:
    runtime.store.connection.execute("SELECT 1").fetchone()
    return APIResponse(
        success=True,
        data={
            "status": "healthy",
            "version": __version__,
            "vendors": runtime.client.vendor_names,
            "scheduled_jobs": len(runtime.scheduler.jobs()),
            "queue_depth": len(runtime.queue),
        },
        request_id=get_request_id(request),
    )


@router.get("/stats", response_model=APIResponse)
async def stats(request: Request, runtime: BarCacheRuntime = Depends(get_runtime)) -> APIResponse:
    return APIResponse(success=True, data=runtime.bars.stats(), request_id=get_request_id(request))
