"""Fixed CORS header set on every response, preflight included.

Unlike Starlette's CORSMiddleware the headers do not depend on the request's
Origin: the browser frontend is the one configured origin.
"""
from __future__ import annotations

from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from chatgate.config import Settings, get_settings

ALLOWED_METHODS = "GET, POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"


def cors_headers(settings: Settings | None = None) -> dict[str, str]:
    settings = settings or get_settings()
    return {
        "Access-Control-Allow-Origin": settings.frontend_url,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


async def cors_middleware(request: Request, call_next: Callable):
    headers = cors_headers()

    if request.method == "OPTIONS":
        return JSONResponse(status_code=200, content={}, headers=headers)

    response = await call_next(request)
    response.headers.update(headers)
    return response
