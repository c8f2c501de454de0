"""
Security Middleware for the Donation Hub
Includes rate limiting, security headers and request size limits
"""

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

from config import Config

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, enabled=Config.RATE_LIMIT_ENABLED)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to all responses
    """
    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        response.headers["Content-Security-Policy"] = "default-src 'none'; img-src 'self'; frame-ancestors 'none';"
        if Config.COOKIE_SECURE:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects request bodies larger than the upload limit
    """

    def __init__(self, app, max_size: int = None):
        super().__init__(app)
        # Multipart framing adds a little on top of the file itself
        self.max_size = (max_size or Config.MAX_UPLOAD_SIZE) + 64 * 1024

    async def dispatch(self, request: Request, call_next: Callable):
        if request.method in ["POST", "PUT", "PATCH"]:
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > self.max_size:
                return JSONResponse(
                    status_code=413,
                    content={
                        "success": False,
                        "error": "payload_too_large",
                        "detail": f"Request payload too large. Maximum size is {Config.MAX_UPLOAD_SIZE // (1024 * 1024)}MB.",
                    }
                )

        return await call_next(request)


def setup_rate_limits(app):
    """
    Configure rate limits for different endpoints
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    return limiter
