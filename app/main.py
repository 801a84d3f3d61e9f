# ============================================================================
# FastAPI Application Entry Point
# ============================================================================
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from redis.exceptions import RedisError
import logging
import traceback

from app.config import Settings, get_settings, validate_runtime_config
from app.core.container import build_container
from app.core.database import create_engine, create_session_maker, create_tables
from app.core.exceptions import AppException
from app.core.redis import RedisCache, create_redis_client
from app.schemas.responses import ErrorResponse

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown"""
    settings: Settings = app.state.settings
    logger.info(f"🚀 Starting {settings.APP_NAME} ({settings.ENVIRONMENT})...")
    validate_runtime_config(settings)

    if settings.is_production and "JWT_SECRET_KEY" not in settings.model_fields_set:
        logger.warning("⚠️ JWT secrets are generated per process; set them explicitly in production")

    engine = create_engine(settings)
    try:
        await create_tables(engine)
        logger.info("✅ Database tables created/verified")
    except SQLAlchemyError as e:
        logger.error(f"❌ Database initialization failed: {e}")
        await engine.dispose()
        raise

    # Redis backs the rate limiter only; continue without it
    cache = RedisCache(create_redis_client(settings.REDIS_URL))
    try:
        await cache.ping()
        logger.info("✅ Redis connected")
    except (RedisError, OSError) as e:
        logger.warning(f"⚠️ Redis connection failed (non-critical): {e}")

    app.state.container = build_container(
        settings, create_session_maker(engine), cache=cache
    )
    logger.info("🎉 Application started successfully!")

    yield

    # Shutdown
    logger.info("👋 Shutting down...")
    await cache.close()
    await engine.dispose()


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    error_code: str,
    exc: Optional[Exception] = None,
) -> JSONResponse:
    error = ErrorResponse(error=message, error_code=error_code)
    settings: Settings = request.app.state.settings
    if exc is not None and not settings.is_production:
        error.stack = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return JSONResponse(status_code=status_code, content=error.model_dump(exclude_none=True))


def _request_context(request: Request) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"{request.method} {request.url.path} from {client_ip}"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Accounts and authentication for a multi-role tutoring platform",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.settings = settings

    # CORS Middleware (credentials needed for the refresh cookie)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception Handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} on {_request_context(request)}: {exc.detail}")
        response = _error_response(
            request, exc.status_code, exc.detail, exc.error_code,
            exc if exc.status_code >= 500 else None,
        )
        if getattr(exc, "retry_after", 0):
            response.headers["Retry-After"] = str(exc.retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Validation failed",
                "error_code": "REQUEST_VALIDATION_ERROR",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.exception(f"Database error on {_request_context(request)}")
        return _error_response(request, 500, "Internal Server Error", "DATABASE_ERROR", exc)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {_request_context(request)}")
        return _error_response(request, 500, "Internal Server Error", "INTERNAL_ERROR", exc)

    # Health Check - Root level
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "app": settings.APP_NAME}

    from app.api.v1.router import api_router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    logger.info(f"✅ API router mounted at {settings.API_V1_PREFIX}")

    return app


app = create_app()
