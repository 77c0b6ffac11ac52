"""FastAPI middleware for observability.

Assigns a request ID to every HTTP request (or reuses the caller's
X-Request-ID) and logs request start and completion.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Context variable for request_id (async-safe)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> str:
    """Current request ID, or "no-request-id" outside a request."""
    return request_id_var.get() or "no-request-id"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to generate and inject request IDs."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_var.set(request_id)

        start_time = time.time()
        logger.info(f"{request.method} {request.url.path}")

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed after {duration_ms:.2f}ms",
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(f"Request completed: {response.status_code} in {duration_ms:.2f}ms")
        response.headers["X-Request-ID"] = request_id
        return response
