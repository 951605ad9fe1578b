import re
import time
import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger()

# Inbound IDs outside this shape are replaced.
VALID_CORRELATION_ID = re.compile(r"[A-Za-z0-9._:-]{1,128}")


def resolve_correlation_id(header_value: str | None) -> str:
    """Return the inbound request ID when well-formed, else a fresh UUID4."""
    if header_value and VALID_CORRELATION_ID.fullmatch(header_value):
        return header_value
    return str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Extracts or generates a correlation ID for each request.

    Reads the ``X-Request-ID`` header, binds it into the structlog context
    so every log line of the request (shipment mutations included) carries
    it, and echoes it back on the response together with the elapsed time.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = resolve_correlation_id(request.META.get("HTTP_X_REQUEST_ID"))
        correlation_id_var.set(cid)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        log = logger.bind(method=request.method, path=request.get_full_path())
        log.info("request.started")
        started = time.monotonic()

        response = self.get_response(request)

        log.info(
            "request.finished",
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )

        response["X-Request-ID"] = cid
        return response
