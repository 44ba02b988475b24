"""Helpers shared by route handlers."""

from fastapi import Request

from barcache.core.runtime import BarCacheRuntime


def get_request_id(request: Request) -> str | None:
    return request.headers.get("X-Request-ID")


def get_runtime(request: Request) -> BarCacheRuntime:
    return request.app.state.runtime
