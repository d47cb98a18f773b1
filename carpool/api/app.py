"""
FastAPI application factory.

* Registers routes for users, vehicles, trips, bookings and admin.
* Starts / stops the background seat auditor via lifespan events.
* Maps every ``CarpoolError`` to a JSON error body and a status code.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.middleware import limiter
from carpool.api.routes import admin, bookings, trips, users, vehicles
from carpool.api.schemas import ErrorResponse
from carpool.domain.errors import CarpoolError, ErrorKind
from carpool.infrastructure.redis_client import close_redis
from carpool.workers import auditor as _auditor

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.CAPACITY_EXCEEDED: 409,
    ErrorKind.FUNDS: 402,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.VALIDATION: 422,
    ErrorKind.TRANSIENT_STORE: 503,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.INVARIANT_VIOLATION: 500,
}

# Documented in OpenAPI for every router
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in sorted(set(STATUS_BY_KIND.values()))
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the auditor on startup; stop it and drop Redis on shutdown."""
    await _auditor.start_audit_loop()
    yield
    await _auditor.stop_audit_loop()
    await close_redis()


async def carpool_error_handler(request: Request, exc: CarpoolError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if exc.kind == ErrorKind.INVARIANT_VIOLATION:
        logger.error(
            "Invariant violation on %s %s: %s %s",
            request.method,
            request.url.path,
            exc.message,
            exc.context,
        )
    elif status_code == 503:
        logger.warning("%s on %s %s", exc.code, request.method, request.url.path)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Reservation API",
        description=(
            "Drivers publish trips, passengers book seats with credits.  "
            "Seat reservation, the credit ledger and cancellations with "
            "refunds run as single atomic transactions."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(CarpoolError, carpool_error_handler)

    # Routers
    app.include_router(users.router, prefix="/api/v1", responses=ERROR_RESPONSES)
    app.include_router(vehicles.router, prefix="/api/v1", responses=ERROR_RESPONSES)
    app.include_router(trips.router, prefix="/api/v1", responses=ERROR_RESPONSES)
    app.include_router(bookings.router, prefix="/api/v1", responses=ERROR_RESPONSES)
    app.include_router(admin.router, prefix="/api/v1", responses=ERROR_RESPONSES)

    return app
