"""Booking core ASGI app.

Every error leaves the API as `{"error": {message, code, status_code, details}}`,
whether it came from a service (`APIException`), FastAPI itself or an
unexpected crash. `/health` is liveness only; `/ready` also pings the database.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from booking_core.api.v1.router import router as v1_router
from booking_core.config import get_settings
from booking_core.database import check_connection, close_db, init_db
from booking_core.exceptions import APIException
from booking_core.middleware import setup_middleware
from booking_core.utils.logging import get_logger, log_error, setup_logging

setup_logging()
logger = get_logger("main")

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup and close it on shutdown."""
    logger.info("Starting booking core service...")
    await init_db()
    if not settings.stripe.is_configured:
        logger.warning("Stripe is not configured - card bookings will fail")
    if not settings.notifications.is_configured:
        logger.warning("Notification service is not configured - events will be dropped")
    logger.info("Booking core service started successfully")
    try:
        yield
    finally:
        logger.info("Shutting down booking core service...")
        await close_db()
        logger.info("Booking core service shut down successfully")


app = FastAPI(
    title="Booking Core",
    description=(
        "Slot availability, checkout locks and appointment lifecycle for a "
        "multi-vendor service marketplace."
    ),
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    debug=settings.debug,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "slots", "description": "Slot availability and nearby dates"},
        {"name": "slot-locks", "description": "Short-lived checkout locks on slots"},
        {"name": "appointments", "description": "Booking, payment, rescheduling and cancellation"},
        {"name": "waitlist", "description": "Waiting for capacity on a full date"},
        {"name": "admin", "description": "Administrative lock and status management"},
        {"name": "v1", "description": "API v1 information"},
    ],
)

setup_middleware(app)
app.include_router(v1_router)


def _error_body(message: str, code: str, status_code: int, details: dict) -> dict:
    return {
        "error": {
            "message": message,
            "code": code,
            "status_code": status_code,
            "details": details,
        }
    }


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle domain exceptions. Client errors are expected traffic and logged at INFO."""
    context = {
        "method": request.method,
        "path": request.url.path,
        "status_code": exc.status_code,
        "code": exc.code,
    }
    if exc.status_code >= 500:
        log_error(exc, context=context)
    else:
        logger.info(
            f"{exc.status_code} {exc.code}: {request.method} {request.url.path} - {exc.message}",
            extra={"extra_fields": context},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions (404, 401 from the admin guard...)."""
    if exc.status_code >= 500:
        log_error(exc, context={"method": request.method, "path": request.url.path})
    else:
        logger.warning(
            f"{exc.status_code}: {request.method} {request.url.path}",
            extra={"extra_fields": {"method": request.method, "path": request.url.path}},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), "HTTP_ERROR", exc.status_code, {}),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle malformed requests."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", [])),
            "message": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Validation error: {request.method} {request.url.path}",
        extra={"extra_fields": {"validation_errors": errors}},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("Validation failed", "VALIDATION_ERROR", 422, {"validation_errors": errors}),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    log_error(exc, context={"method": request.method, "path": request.url.path, "unhandled": True})

    if settings.is_production:
        message, details = "An internal server error occurred", {}
    else:
        message, details = str(exc), {"exception_type": type(exc).__name__}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(message, "INTERNAL_SERVER_ERROR", 500, details),
    )


@app.get("/health")
async def health_check():
    """Liveness probe."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
        "stripe_configured": settings.stripe.is_configured,
        "notifications_configured": settings.notifications.is_configured,
    }


@app.get("/ready")
async def readiness_check():
    """Readiness probe with a database round trip."""
    if not await check_connection():
        logger.warning("Readiness check failed: database not connected")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "database": "disconnected"},
        )
    return {"status": "ready", "database": "connected"}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "booking_core.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload,
        log_level=settings.log_level.lower(),
    )
