"""Middleware registration."""

from fastapi import FastAPI

from phantom.config import Settings
from phantom.middleware.error_handler import setup_error_handlers
from phantom.middleware.logging import setup_logging
from phantom.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, exception handlers and the request id middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
