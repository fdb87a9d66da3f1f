"""Request tracing and CORS for the access API.

Every response carries ``X-Request-Id`` (the caller's own id when it sends a
usable one) and ``X-Response-Time-Ms``. Denied and throttled requests are
logged at WARNING so permission and rate-limit problems stand out.
"""

import uuid
import time
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from sanctuary.core.config import settings

logger = logging.getLogger("sanctuary")

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 64

# Browser clients read these to show the caller when they may retry.
EXPOSED_HEADERS = [REQUEST_ID_HEADER, "X-Response-Time-Ms", "Retry-After"]

_NOISY_STATUSES = {401, 403, 429}


def _incoming_request_id(request: Request) -> str:
    candidate = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH and candidate.isprintable():
        return candidate
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log how it went."""

    async def dispatch(self, request: Request, call_next):
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        duration = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        level = logging.WARNING if response.status_code in _NOISY_STATUSES else logging.INFO
        logger.log(
            level,
            "%s %s %s %sms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            request_id,
        )
        return response


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )
    app.add_middleware(RequestIdMiddleware)
