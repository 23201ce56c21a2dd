"""No-store headers for freshness-critical endpoints.

Learn: The whole sync mechanism relies on clients seeing the current
version snapshot. An intermediary HTTP cache serving a stale snapshot
would defeat it silently, so every response under the configured path
prefixes is marked uncacheable:
- Cache-Control: no-store for browsers and proxies
- Pragma / Expires: for HTTP/1.0 intermediaries
- Surrogate-Control: for CDNs
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "Surrogate-Control": "no-store",
}


class NoStoreMiddleware(BaseHTTPMiddleware):
    """Mark responses under `path_prefixes` as uncacheable."""

    def __init__(self, app, path_prefixes: tuple[str, ...] = ("/api/versions",)):
        super().__init__(app)
        self.path_prefixes = path_prefixes

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        if request.url.path.startswith(self.path_prefixes):
            for name, value in NO_STORE_HEADERS.items():
                response.headers[name] = value
        return response
