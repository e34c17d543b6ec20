"""
Middleware package.
"""
from orderdesk.middleware.error_handler import ErrorHandlerMiddleware
from orderdesk.middleware.request_id import RequestIdMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestIdMiddleware",
]
