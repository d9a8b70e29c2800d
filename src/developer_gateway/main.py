import time
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import SessionLocal, create_tables, get_redis
from .exceptions import GatewayError
from .services.usage_logger import UsageLogger
from .utils.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("🚀 Starting Developer Gateway...")

    try:
        create_tables()
        logger.info("✅ Database initialized")
    except Exception as e:
        logger.error("❌ Database initialization failed", error=str(e))

    if get_redis() is None:
        logger.warning("⚠️ Redis not available, using in-process rate windows and no auth cache")

    logger.info("🎯 Developer Gateway is ready!")

    yield

    logger.info("🛑 Shutting down Developer Gateway...")


# Create FastAPI app
app = FastAPI(
    title="Developer Gateway",
    description="API key issuance, authentication and metered usage for the developer API program",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Usage log writes open their own sessions
app.state.session_factory = SessionLocal

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_message(request: Request, status_code: int) -> str:
    """Message of the error envelope sent to the caller, or the HTTP reason phrase."""
    return getattr(request.state, "error_message", None) or HTTPStatus(status_code).phrase


@app.middleware("http")
async def record_api_usage(request: Request, call_next):
    """Append a usage log entry for every metered call once its status is known."""
    started = time.perf_counter()
    response = await call_next(request)

    developer = getattr(request.state, "developer", None)
    tool_name = getattr(request.state, "tool_name", None)
    if developer is None or developer.is_anonymous or tool_name is None:
        return response

    failed = response.status_code >= 400
    usage_logger = UsageLogger(request.app.state.session_factory)
    await run_in_threadpool(
        usage_logger.record,
        developer.id,
        tool_name,
        "error" if failed else "success",
        endpoint=request.url.path,
        method=request.method,
        status_code=response.status_code,
        error_message=_error_message(request, response.status_code) if failed else None,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        processing_time_ms=int((time.perf_counter() - started) * 1000),
    )
    return response


# Exception handlers
@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    request.state.error_message = exc.message
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code)
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    request.state.error_message = "Request validation failed"
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "validation_error",
                "message": "Request validation failed",
                "details": [
                    {"loc": list(error["loc"]), "msg": error["msg"]}
                    for error in exc.errors()
                ],
            }
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    request.state.error_message = str(exc.detail)
    code = "not_found" if exc.status_code == 404 else "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": code, "message": str(exc.detail)}},
    )


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error("internal_error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


# Root endpoints
@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "Developer Gateway",
        "version": "1.0.0",
        "status": "online",
        "endpoints": {
            "health": "/health",
            "docs": "/docs",
            "portal": "/api/dev",
            "admin": "/api/developers",
            "api": "/v1",
        },
    }


@app.get("/health")
def health_check(request: Request):
    """Liveness check including a database ping."""
    db = request.app.state.session_factory()
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "connected",
            "redis": "connected" if get_redis() else "disabled",
        }
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        return JSONResponse(status_code=503, content={"status": "unhealthy"})
    finally:
        db.close()


# Include API routers
from .api.developers import router as developers_router  # noqa: E402
from .api.portal import router as portal_router  # noqa: E402
from .api.v1 import router as v1_router  # noqa: E402

app.include_router(portal_router)
app.include_router(developers_router)
app.include_router(v1_router)


# Development server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "developer_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )
