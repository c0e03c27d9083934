import sentry_sdk
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from starlette.middleware.cors import CORSMiddleware

from videoai.api.main import api_router
from videoai.core.config import settings
from videoai.core.db import close_mongodb_connection, connect_to_mongodb
from videoai.core.exceptions import BaseAppException
from videoai.core.logger import get_logger, log_exception
from videoai.services.change_feed import RedisChangeFeed
from videoai.services.container import ServiceContainer
from videoai.services.storage import S3ObjectStorage

logger = get_logger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    await connect_to_mongodb(settings)

    services = ServiceContainer.build(settings)
    app.state.services = services

    # Connect the change feed; reconcilers fall back to polling without it
    if isinstance(services.change_feed, RedisChangeFeed):
        try:
            await services.change_feed.connect()
            logger.info("Redis change feed connected")
        except Exception as e:
            logger.warning(f"Redis connection failed, push updates disabled: {e}")

    # Ensure S3 buckets exist
    if isinstance(services.storage, S3ObjectStorage):
        try:
            await services.storage.ensure_buckets_exist(
                [settings.S3_VIDEOS_BUCKET, settings.S3_THUMBNAILS_BUCKET]
            )
            logger.info("S3 buckets checked/created")
        except Exception as e:
            logger.warning(f"S3 bucket setup skipped: {e}")

    yield

    # Shutdown
    await services.shutdown()
    await close_mongodb_connection()


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)

# Set all CORS enabled origins
cors_origins = settings.all_cors_origins or [
    "http://localhost:8081",
    "http://localhost:3000",
    "http://localhost",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers for standardized error responses
@app.exception_handler(BaseAppException)
async def base_app_exception_handler(request: Request, exc: BaseAppException):
    """Handle all custom application exceptions."""
    log_exception(logger, exc)
    return JSONResponse(
        status_code=exc.http_status_code,
        content={
            "success": False,
            "error": exc.message,
            "error_code": exc.error_code,
            "detail": exc.to_dict(),
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle FastAPI HTTPException with standardized format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            "error_code": f"HTTP_{exc.status_code}",
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with field-level messages."""
    errors = exc.errors()

    field_errors = {}
    messages = []

    for error in errors:
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        msg = error["msg"]
        field_errors[field] = msg
        messages.append(f"{field}: {msg}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": messages[0] if len(messages) == 1 else "Invalid request data",
            "error_code": "VALIDATION_ERROR",
            "field_errors": field_errors,
            "details": jsonable_errors(errors),
        },
    )


def jsonable_errors(errors: list[dict]) -> list[dict]:
    # ctx may carry exception instances
    return [{k: v for k, v in e.items() if k != "ctx"} for e in errors]


app.include_router(api_router, prefix=settings.API_V1_STR)
