from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

NO_STORE = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}

BASELINE = {
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Baseline headers everywhere; /l/ and /v1/ responses are never cacheable.

    A cached 302 would skip the click counter, and a cached 403 would keep
    serving the error page after a group is published.
    """

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        path = request.url.path
        is_redirect = path.startswith("/l/")

        if "server" in response.headers:
            del response.headers["server"]

        if is_redirect or path.startswith("/v1/"):
            response.headers.update(NO_STORE)

        if is_redirect:
            # Destinations still see where the visitor came from; crawlers stay off the short URLs
            response.headers["Referrer-Policy"] = "no-referrer-when-downgrade"
            response.headers["X-Robots-Tag"] = "noindex, nofollow"
        else:
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        response.headers.update(BASELINE)
        return response
