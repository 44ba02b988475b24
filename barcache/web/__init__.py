"""HTTP API for barcache."""

from barcache.web.app import create_app

__all__ = ["create_app"]
