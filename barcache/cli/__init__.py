"""Command line interface entry points for barcache."""

from .main import app, create_app, run

__all__ = ["app", "create_app", "run"]
