"""Middleware registration."""

from fastapi import FastAPI

from cordnode.config import Settings
from cordnode.middleware.cors import setup_cors
from cordnode.middleware.error_handler import setup_error_handlers
from cordnode.middleware.logging import setup_logging
from cordnode.middleware.rate_limit import RateLimitMiddleware
from cordnode.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and the middleware stack.

    Starlette runs middleware in reverse-add order, so CORS (added last) is
    outermost and also decorates 429 responses from the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
