"""
Deforestation Maps Service - Main Application
FastAPI service for smallholder polygons, forest layers and map state
"""
import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import init_db, close_db
from errors import ServiceError, ValidationError
from routers import polygons, forest_layers, search, session
from schemas.common import failure

settings = get_settings()

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Deforestation Maps Service", version=settings.app_version)
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down Deforestation Maps Service")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Deforestation tracking API.

    Features:
    - Smallholder polygon management with bounds and state filters
    - GeoJSON import and export
    - Forest layer overlays (deforestation, regrowth, primary and disturbed forest)
    - Location search
    - Persisted map view state
    """,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests"""
    logger.info(
        "Request",
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else None
    )
    response = await call_next(request)
    logger.info(
        "Response",
        method=request.method,
        path=request.url.path,
        status=response.status_code
    )
    return response


# Error envelope
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return ORJSONResponse(
        status_code=exc.status_code,
        content=failure(exc.summary, exc.field_errors or exc.errors),
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return ORJSONResponse(status_code=exc.status_code, content=failure(exc.message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    field_errors = {}
    for error in exc.errors():
        location = [str(part) for part in error["loc"] if part not in ("body", "query", "path")]
        field = ".".join(location) or "body"
        field_errors.setdefault(field, []).append(error["msg"])

    return ORJSONResponse(status_code=422, content=failure("Validation failed", field_errors))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return ORJSONResponse(
        status_code=exc.status_code,
        content=failure(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


app.include_router(polygons.router, prefix="/polygons", tags=["Polygons"])
app.include_router(forest_layers.router, prefix="/forest-layers", tags=["Forest Layers"])
app.include_router(search.router, prefix="/search", tags=["Search"])
app.include_router(session.router, prefix="/session", tags=["Session"])


# Health check endpoints
@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "version": settings.app_version}


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    """Readiness check - verifies the database"""
    from database import check_db_connection

    checks = {
        "database": await check_db_connection(),
    }

    return {
        "status": "ready" if all(checks.values()) else "not_ready",
        "mode": "lite" if settings.lite_mode else "full",
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API info"""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "mode": "lite" if settings.lite_mode else "full",
        "docs": "/docs" if settings.debug else "disabled",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
