"""
FastAPI application main module.
"""
import logging
import time
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from tcg_pricing import __version__
from tcg_pricing.api.dependencies import get_settings
from tcg_pricing.api.routers import prices_current, prices_history
from tcg_pricing.config import configure_logging
from tcg_pricing.exceptions import ConfigurationError

settings = get_settings()
configure_logging(settings)

logger = logging.getLogger(__name__)

if settings.cors_origins == ("*",):
    logger.warning(
        "CORS_ORIGINS not set - allowing all origins (*). "
        "For production, set CORS_ORIGINS in environment variables or .env file"
    )
else:
    logger.info("CORS configured with origins: %s", list(settings.cors_origins))

app = FastAPI(
    title="TCG Pricing API",
    description="Price history and current prices for trading cards",
    version=__version__,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware (debug-level, minimal noise by default)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Lightweight request logging; detailed logs only when LOG_LEVEL=DEBUG."""
    start_time = time.time()

    method = request.method
    path = request.url.path
    query_params = str(request.query_params) if request.query_params else None

    logger.debug(
        "INCOMING REQUEST: %s %s%s",
        method,
        path,
        f"?{query_params}" if query_params else "",
    )

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error("EXCEPTION in request handler: %s %s | Error: %s", method, path, e, exc_info=True)
        raise

    process_time = time.time() - start_time
    logger.debug(
        "RESPONSE: %s %s -> %s (took %.3fs)",
        method,
        path,
        response.status_code,
        process_time,
    )

    return response

# History router first: its paths are more specific than /prices/{category}/{card_id}
app.include_router(prices_history.router)
app.include_router(prices_current.router)


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "title": app.title,
        "description": app.description,
        "version": app.version,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with logging."""
    logger.warning(
        "HTTP %s ERROR: %s %s | Detail: %s",
        exc.status_code, request.method, request.url.path, exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with logging."""
    logger.error(
        "VALIDATION ERROR: %s %s | Errors: %s",
        request.method, request.url.path, exc.errors(),
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()}
    )


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    """Missing server configuration (e.g. DATABASE_URL)."""
    logger.error("CONFIGURATION ERROR: %s %s | %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service is not configured"}
    )
