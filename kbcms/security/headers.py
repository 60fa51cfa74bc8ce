"""
Security headers for every response.

The site serves its own server-rendered pages and forms only, so the
policy allows same-origin resources and denies framing outright.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add hardened security headers to all responses."""

    PERMISSIONS_POLICY = ", ".join([
        "camera=()",
        "geolocation=()",
        "microphone=()",
        "payment=()",
        "usb=()",
    ])

    CSP_DIRECTIVES = {
        "default-src": "'self'",
        "script-src": "'self' 'unsafe-inline'",
        "style-src": "'self' 'unsafe-inline'",
        "img-src": "'self' data: https:",
        "frame-ancestors": "'none'",
        "base-uri": "'self'",
        "form-action": "'self'",
    }

    def __init__(self, app, hsts: bool = False):
        """
        Args:
            app: The ASGI application
            hsts: Send Strict-Transport-Security (only behind HTTPS)
        """
        super().__init__(app)
        self.hsts = hsts
        self.csp = "; ".join(f"{key} {value}" for key, value in self.CSP_DIRECTIVES.items())

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["Content-Security-Policy"] = self.csp
        response.headers["Permissions-Policy"] = self.PERMISSIONS_POLICY

        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Admin pages carry per-user data and CSRF tokens
        if request.url.path.startswith("/admin"):
            response.headers["Cache-Control"] = "no-store"

        return response
