"""API middleware: correlation ID, requester context, request audit."""

import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from medcross.core.context import correlation_id_ctx, requester_id_ctx
from medcross.domain.models.record import normalize_user_id

logger = logging.getLogger(__name__)

REQUESTER_HEADER = "X-Requester-ID"
CORRELATION_HEADER = "X-Correlation-ID"
IDEMPOTENCY_HEADER = "X-Idempotency-Key"

# Paths served without a requester identity.
PUBLIC_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Generate or preserve correlation ID; attach to request.state, response header, and logging context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        correlation_id_ctx.set(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class RequesterContextMiddleware(BaseHTTPMiddleware):
    """
    Extract X-Requester-ID (identity established upstream by the wallet/auth
    layer); return 401 if missing; attach to request.state and logging context.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in PUBLIC_PATHS:
            request.state.requester_id = None
            return await call_next(request)
        requester_id = request.headers.get(REQUESTER_HEADER)
        if not requester_id or not requester_id.strip():
            return JSONResponse(
                status_code=401,
                content={"detail": "X-Requester-ID header is required"},
            )
        request.state.requester_id = normalize_user_id(requester_id)
        requester_id_ctx.set(request.state.requester_id)
        return await call_next(request)


class RequestAuditMiddleware(BaseHTTPMiddleware):
    """After response: log structured request audit (path, method, status_code, requester)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        logger.info(
            "request_audit",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "requester": getattr(request.state, "requester_id", None),
            },
        )
        return response
