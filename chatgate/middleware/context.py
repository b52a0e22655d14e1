"""Per-request logging context."""
from __future__ import annotations

import uuid
from typing import Callable

import structlog
from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"


async def request_context_middleware(request: Request, call_next: Callable):
    """Start every request with a fresh structlog context and a request id.

    A caller-supplied ``X-Request-ID`` is kept; otherwise one is generated. The
    id is echoed back on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        path=request.url.path,
        method=request.method,
    )
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
