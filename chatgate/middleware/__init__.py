"""HTTP middleware."""

from chatgate.middleware.context import request_context_middleware
from chatgate.middleware.cors import cors_headers, cors_middleware

__all__ = ["cors_headers", "cors_middleware", "request_context_middleware"]
