from __future__ import annotations

from typing import Sequence

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Appends common security headers to every response.

    Responses under `public_paths` (the calendar feed) are fetched by calendar
    clients and other sites, so they are opened to any origin and may be cached.
    """

    def __init__(
        self,
        app,
        *,
        csp: str,
        hsts_max_age: int,
        enable_hsts: bool,
        public_paths: Sequence[str] = (),
        public_max_age: int = 900,
    ) -> None:
        super().__init__(app)
        self.csp = csp
        self.hsts_max_age = hsts_max_age
        self.enable_hsts = enable_hsts
        self.public_paths = tuple(public_paths)
        self.public_max_age = public_max_age

    def _is_public(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.public_paths)

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        if self.enable_hsts:
            response.headers.setdefault(
                "Strict-Transport-Security",
                f"max-age={self.hsts_max_age}; includeSubDomains; preload",
            )

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")

        if self._is_public(request.url.path):
            response.headers.setdefault("Access-Control-Allow-Origin", "*")
            if response.status_code == 200:
                response.headers.setdefault("Cache-Control", f"public, max-age={self.public_max_age}")
            return response

        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Permissions-Policy",
            "geolocation=(), microphone=(), camera=()",
        )
        response.headers.setdefault("Cache-Control", "no-store")
        if self.csp:
            response.headers.setdefault("Content-Security-Policy", self.csp)

        return response
