"""Correlation ID middleware."""

import logging
import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_HEADER = "x-correlation-id"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def get_correlation_id(request: Request) -> str:
    """Correlation ID for the request, generating one if middleware did not run."""
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id
    return correlation_id


class CorrelationIdFilter(logging.Filter):
    """Attach the current correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Add correlation ID to requests, responses and log records."""

    async def dispatch(self, request: Request, call_next):
        """Process request with correlation ID."""
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        try:
            response: Response = await call_next(request)
        finally:
            correlation_id_var.reset(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
