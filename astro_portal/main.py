# astro_portal/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
import logging
import time

from astro_portal.core.config import settings
from astro_portal.core.exceptions import AstroPortalError
from astro_portal.core.logging_config import setup_logging, set_request_id
from astro_portal.database.supabase_client import supabase_manager
from astro_portal.dependencies.services import reset_service_instances
from astro_portal.routers import ads, charts, chat, compatibility, horoscopes, preferences, reports, session, templates

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan event handler for FastAPI.
    Runs on startup and shutdown.
    """
    setup_logging()
    logger.info(
        f"Starting {settings.PROJECT_NAME} v{settings.PROJECT_VERSION} "
        f"({settings.ENVIRONMENT}), Supabase at {settings.SUPABASE_URL}, "
        f"CORS origins {settings.BACKEND_CORS_ORIGINS}"
    )

    try:
        await supabase_manager.init()
    except Exception as e:
        logger.error(f"Supabase client initialization failed: {str(e)}")
        raise

    yield  # Application runs here

    logger.info("Shutting down application...")
    reset_service_instances()
    await supabase_manager.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description="Astrology portal API - birth charts, reports, compatibility, PDF export and ad placements",
    docs_url="/docs" if settings.IS_DEVELOPMENT else None,
    redoc_url="/redoc" if settings.IS_DEVELOPMENT else None,
    openapi_url="/openapi.json" if settings.IS_DEVELOPMENT else None,
    lifespan=lifespan,
)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag each request with an ID and log its outcome."""
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    start_time = time.time()

    if request.url.path in ["/health", "/docs", "/redoc", "/openapi.json"]:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    logger.info(f"Incoming request: {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(
            f"Error: {request.method} {request.url.path} "
            f"-> Exception: {str(e)} in {process_time:.3f}s"
        )
        raise

    process_time = time.time() - start_time
    logger.info(
        f"Response: {request.method} {request.url.path} "
        f"-> {response.status_code} in {process_time:.3f}s"
    )
    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-ID"] = request_id
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Process-Time", "X-Request-ID", "X-Export-Fallback", "Content-Disposition"],
)

@app.exception_handler(AstroPortalError)
async def astro_portal_exception_handler(request: Request, exc: AstroPortalError):
    """Map store, ad and export errors to their HTTP status."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with detailed messages."""
    logger.warning(f"Validation error: {exc.errors()}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request data",
            "errors": jsonable_encoder(exc.errors()),
        },
    )

@app.exception_handler(404)
async def not_found_exception_handler(request: Request, exc: Exception):
    """Handle 404 errors, keeping the detail of handlers that raised one."""
    detail = getattr(exc, "detail", None)
    if not detail or detail == "Not Found":
        detail = "Endpoint not found"
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": detail},
    )

@app.exception_handler(500)
async def internal_server_error_handler(request: Request, exc: Exception):
    """Handle 500 errors gracefully."""
    logger.error(f"Internal server error: {str(exc)}")

    error_detail = "Internal server error" if settings.IS_PRODUCTION else str(exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": error_detail},
    )

@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint with basic information."""
    return {
        "message": f"Welcome to {settings.PROJECT_NAME} API",
        "version": settings.PROJECT_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if settings.IS_DEVELOPMENT else None,
        "health": "/health",
    }

@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for monitoring."""
    health_status = {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "version": settings.PROJECT_VERSION,
        "timestamp": time.time(),
        "components": {},
    }

    if supabase_manager.client is not None:
        health_status["components"]["supabase"] = {"status": "healthy", "message": "Client initialized"}
    else:
        health_status["components"]["supabase"] = {"status": "unhealthy", "message": "Client not initialized"}
        health_status["status"] = "degraded"

    return health_status

@app.get("/info", tags=["Info"])
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.PROJECT_VERSION,
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "cors_origins": settings.BACKEND_CORS_ORIGINS,
        "api_prefix": settings.API_V1_STR,
        "pdf_export_timeout_seconds": settings.PDF_EXPORT_TIMEOUT_SECONDS,
        "ad_cache_ttl_seconds": settings.AD_CACHE_TTL_SECONDS,
        "zone_cache_ttl_seconds": settings.ZONE_CACHE_TTL_SECONDS,
    }

app.include_router(charts.router, prefix=settings.API_V1_STR)
app.include_router(reports.router, prefix=settings.API_V1_STR)
app.include_router(templates.router, prefix=settings.API_V1_STR)
app.include_router(compatibility.router, prefix=settings.API_V1_STR)
app.include_router(horoscopes.router, prefix=settings.API_V1_STR)
app.include_router(ads.router, prefix=settings.API_V1_STR)
app.include_router(chat.router, prefix=settings.API_V1_STR)
app.include_router(preferences.router, prefix=settings.API_V1_STR)
app.include_router(session.router, prefix=settings.API_V1_STR)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "astro_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.IS_DEVELOPMENT,
        log_level="info",
    )
