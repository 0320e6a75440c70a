"""Logging, request tracing and JSON error payloads for the storefront API."""

from .error_handler import init_error_handler
from .request_logger import init_request_logger
from .logging_config import setup_logging, get_logger
from .utils import (
    current_request_id, log_function_call, log_performance_metric, sanitize_data
)

__all__ = [
    'init_middleware',
    'init_error_handler',
    'init_request_logger',
    'setup_logging',
    'get_logger',
    'current_request_id',
    'log_function_call',
    'log_performance_metric',
    'sanitize_data',
]


def init_middleware(app):
    """Wire logging first so the other components log through it."""
    setup_logging(app)
    init_error_handler(app)
    init_request_logger(app)

    get_logger(__name__).info(
        f"Middleware initialized for {app.config.get('API_TITLE')}",
        extra={'event': 'middleware_initialized'}
    )
