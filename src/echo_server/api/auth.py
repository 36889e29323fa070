"""API key authentication middleware.

Requests whose path starts with one of the protected prefixes must carry a
valid key in the ``X-API-Key`` header. Every other path passes through
without any credential inspection.
"""

import logging
from typing import Any, Iterable, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .errors import error_body
from .keystore import KeyStore

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
MISSING_API_KEY = "missing API key"
INVALID_API_KEY = "invalid API key"


def is_protected_path(path: str, protected_prefixes: Iterable[str]) -> bool:
    """Return True if ``path`` starts with any of ``protected_prefixes``."""
    return any(path.startswith(prefix) for prefix in protected_prefixes)


def raw_header_value(request: Request, name: str) -> bytes:
    """Header value as the bytes the client sent.

    Starlette decodes header values as latin-1, so encoding back with
    latin-1 restores the bytes on the wire, including UTF-8 sequences.
    """
    return request.headers.get(name, "").encode("latin-1")


def auth_error(message: str) -> JSONResponse:
    """Build the 401 response used for both missing and invalid keys."""
    return JSONResponse(status_code=401, content=error_body(message))


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Reject requests to protected paths that lack a valid ``X-API-Key``.

    Missing and invalid keys both yield 401; only the error message tells
    them apart. The wrapped app is never called for a rejected request.
    """

    def __init__(self, app: Any, *, key_store: KeyStore, protected_prefixes: Sequence[str]) -> None:
        super().__init__(app)
        self.key_store = key_store
        self.protected_prefixes = tuple(protected_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not is_protected_path(path, self.protected_prefixes):
            return await call_next(request)

        api_key = raw_header_value(request, API_KEY_HEADER)
        if not api_key:
            logger.warning(f"Rejected {request.method} {path}: {MISSING_API_KEY}")
            return auth_error(MISSING_API_KEY)

        if not self.key_store.validate(api_key):
            logger.warning(f"Rejected {request.method} {path}: {INVALID_API_KEY}")
            return auth_error(INVALID_API_KEY)

        return await call_next(request)
