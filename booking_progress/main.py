# File: booking_progress/main.py
"""
FastAPI application for the booking progress service.

Domain exceptions raised anywhere below the routers are rendered here, so
endpoints never build error responses themselves.
"""
import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_progress.api.api import api_router
from booking_progress.core.config import settings
from booking_progress.core.events import setup_event_handlers
from booking_progress.core.exceptions import (
    AuthenticationException,
    BookingProgressException,
    ConcurrentModificationException,
    EntityNotFoundException,
    ForbiddenException,
    IntegrityException,
    ValidationException,
)
from booking_progress.db.session import init_db

# --- Logging ---
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("booking_progress")
logger.info(
    f"Starting {settings.PROJECT_NAME} ({settings.ENVIRONMENT}): "
    f"progress mode {settings.PROGRESS_MODE.value}, recompute retries {settings.RECOMPUTE_MAX_RETRIES}"
)

# Checked in order, so subclasses must come before their bases
EXCEPTION_STATUS_CODES = [
    (ValidationException, status.HTTP_400_BAD_REQUEST),
    (EntityNotFoundException, status.HTTP_404_NOT_FOUND),
    (AuthenticationException, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenException, status.HTTP_403_FORBIDDEN),
    (IntegrityException, status.HTTP_409_CONFLICT),
    (ConcurrentModificationException, status.HTTP_409_CONFLICT),
]

DEV_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def status_code_for(exc: BookingProgressException) -> int:
    for exception_class, status_code in EXCEPTION_STATUS_CODES:
        if isinstance(exc, exception_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Progress and status aggregation for marketplace bookings",
    version="1.0.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
)

# --- CORS ---
cors_origins = [str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS if origin]
if not cors_origins and not settings.PRODUCTION:
    logger.warning(f"BACKEND_CORS_ORIGINS is empty, allowing local frontends: {DEV_CORS_ORIGINS}")
    cors_origins = DEV_CORS_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


# --- Error handlers ---
@app.exception_handler(BookingProgressException)
async def booking_progress_exception_handler(request: Request, exc: BookingProgressException):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"Unmapped {type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(errors)} validation error(s) {errors}")
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": errors})


# --- Request logging ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            f"{request.method} {request.url.path} failed after {time.perf_counter() - started:.3f}s"
        )
        raise
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({time.perf_counter() - started:.3f}s)"
    )
    return response


setup_event_handlers(app)


@app.on_event("startup")
def create_tables():
    if settings.CREATE_TABLES_ON_STARTUP:
        init_db()


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/", tags=["Root"], summary="API Root Endpoint")
def read_root():
    """Service name, progress mode and where the docs live."""
    return {
        "project_name": settings.PROJECT_NAME,
        "environment": settings.ENVIRONMENT,
        "progress_mode": settings.PROGRESS_MODE.value,
        "docs_url": app.docs_url,
    }


@app.get("/health", tags=["Health"], summary="API Health Check")
def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
