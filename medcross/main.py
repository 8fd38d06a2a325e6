# medcross/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from medcross.api.dependencies import close_clients
from medcross.api.middleware import (
    CorrelationIdMiddleware,
    RequestAuditMiddleware,
    RequesterContextMiddleware,
)
from medcross.api.routers import health, ledger, records, statistics
from medcross.application.exceptions import (
    ApplicationError,
    MessagingFailureError,
    SubmissionTimeoutError,
)
from medcross.config.logging import configure_logging
from medcross.config.settings import get_settings
from medcross.domain.exceptions import (
    DomainError,
    DomainValidationError,
    IdempotencyConflictError,
    InvalidTransitionError,
    NotFoundOrUnauthorizedError,
)

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.storage_backend == "database":
        from medcross.infrastructure.database.session import init_models

        await init_models()
    logger.info(
        "api_started",
        extra={"environment": settings.environment, "storage_backend": settings.storage_backend},
    )
    yield
    await close_clients()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Middleware order: last added runs first (outermost). Request flow: CorrelationId -> RequesterContext -> RequestAudit.
app.add_middleware(RequestAuditMiddleware)
app.add_middleware(RequesterContextMiddleware)
app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(DomainValidationError)
async def domain_validation_error_handler(request, exc: DomainValidationError):
    return JSONResponse(status_code=422, content={"detail": exc.message})


@app.exception_handler(NotFoundOrUnauthorizedError)
async def not_found_error_handler(request, exc: NotFoundOrUnauthorizedError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_error_handler(request, exc: InvalidTransitionError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(IdempotencyConflictError)
async def idempotency_conflict_error_handler(request, exc: IdempotencyConflictError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(DomainError)
async def domain_error_handler(request, exc: DomainError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(SubmissionTimeoutError)
async def submission_timeout_error_handler(request, exc: SubmissionTimeoutError):
    return JSONResponse(status_code=504, content={"detail": exc.message})


@app.exception_handler(MessagingFailureError)
async def messaging_failure_error_handler(request, exc: MessagingFailureError):
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=500, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    logger.error("unhandled_error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Routers: /health, /records, /statistics, /ledger
app.include_router(health.router)
app.include_router(records.router, prefix="/records")
app.include_router(statistics.router, prefix="/statistics")
app.include_router(ledger.router, prefix="/ledger")
