"""Request tracing, access logging and latency metrics"""

import logging
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from sacco_admin.infrastructure.observability.metrics import request_duration_histogram

REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger("sacco_admin.access")


def _route_template(request: Request) -> str:
    # "/api/admin/credit/requests/{request_id}" rather than the concrete id
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id (the caller's X-Request-ID when given) and log its outcome"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "Request handled",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Observe request latency per method, route template and status"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        request_duration_histogram.labels(
            method=request.method,
            endpoint=_route_template(request),
            status=response.status_code,
        ).observe(time.perf_counter() - started)
        return response
