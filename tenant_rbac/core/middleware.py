"""CORS and request-context middleware."""

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from tenant_rbac.core.config import settings

logger = logging.getLogger("tenant_rbac.requests")

REQUEST_ID_HEADER = "X-Request-Id"
CASCADE_STATUS_HEADER = "X-Cascade-Status"


def record_cascade(request: Request, report) -> None:
    """Remember a cascade outcome so the response carries it as a header."""
    request.state.cascade_status = report.status


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log who made it.

    An inbound ``X-Request-Id`` is reused. ``request.state.actor_id`` is filled
    in by the auth dependency and ``request.state.cascade_status`` by routes
    that run a cascade; the latter is echoed as ``X-Cascade-Status`` and a
    ``partial`` cascade is logged as a warning.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        request.state.actor_id = None
        request.state.cascade_status = None
        started = time.perf_counter()

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        cascade_status = request.state.cascade_status
        if cascade_status:
            response.headers[CASCADE_STATUS_HEADER] = cascade_status

        logger.log(
            logging.WARNING if cascade_status == "partial" else logging.INFO,
            "%s %s %s actor=%s cascade=%s %.1fms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            request.state.actor_id,
            cascade_status or "-",
            (time.perf_counter() - started) * 1000,
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
        expose_headers=[REQUEST_ID_HEADER, CASCADE_STATUS_HEADER],
    )
    app.add_middleware(RequestContextMiddleware)
