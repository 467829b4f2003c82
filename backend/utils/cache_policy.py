"""Cache-Control policy for browser and service-worker clients.

API and dashboard responses are network-first (``no-cache``: always
revalidated). Static assets are cache-first (long-lived and immutable).
A handler that sets Cache-Control itself keeps its own value.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
from typing import Callable, Optional

NETWORK_FIRST = "no-cache"
CACHE_FIRST = "public, max-age=31536000, immutable"

NETWORK_FIRST_PREFIXES = ("/api/", "/dashboard")
STATIC_PREFIXES = ("/_next/static/", "/icons/", "/images/", "/static/")
STATIC_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico",
    ".css", ".js", ".woff", ".woff2",
)


def cache_strategy(path: str) -> Optional[str]:
    """Return "network-first", "cache-first" or None for a request path."""
    if path == "/api" or path.startswith(NETWORK_FIRST_PREFIXES):
        return "network-first"
    if path.startswith(STATIC_PREFIXES) or path.lower().endswith(STATIC_EXTENSIONS):
        return "cache-first"
    return None


def cache_control_for(path: str) -> Optional[str]:
    strategy = cache_strategy(path)
    if strategy == "network-first":
        return NETWORK_FIRST
    if strategy == "cache-first":
        return CACHE_FIRST
    return None


class CachePolicyMiddleware(BaseHTTPMiddleware):
    """Stamp Cache-Control on responses that do not already carry one."""

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)
        value = cache_control_for(request.url.path)
        if value and "cache-control" not in response.headers:
            response.headers["Cache-Control"] = value
        return response
