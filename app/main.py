# app/main.py
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.api import api_router
from app.core.config import Settings, settings as default_settings
from app.core.errors import AppError
from app.core.logging import logger, setup_logging
from app.db.init_db import init_db
from app.repositories import create_data_backend
from app.repositories.base import DataBackend
from app.services.storage import LocalStorageBackend, StorageBackend, create_storage


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the API as {"error": "..."}."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": _validation_message(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"Unexpected error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )


def create_app(
    settings: Settings = None,
    data_backend: DataBackend = None,
    storage: StorageBackend = None,
) -> FastAPI:
    """
    Build the API. Backends not passed in are created from settings.
    """
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON, settings.PROJECT_NAME)
    data_backend = data_backend or create_data_backend(settings)
    storage = storage or create_storage(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(data_backend, settings)
        logger.info(f"{settings.PROJECT_NAME} started ({settings.DATA_BACKEND} data, {settings.STORAGE_BACKEND} storage)")
        yield
        data_backend.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.data_backend = data_backend
    app.state.storage = storage

    # Set up CORS
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(f"Request: {request.method} {request.url.path} - Status: {response.status_code} - Time: {process_time:.2f}s")
        return response

    register_exception_handlers(app)

    @app.get("/")
    async def root():
        return {"message": f"Welcome to the {settings.PROJECT_NAME}"}

    @app.get("/health")
    @app.get(f"{settings.API_V1_STR}/health")
    async def health_check():
        return {"status": "healthy"}

    app.include_router(api_router, prefix=settings.API_V1_STR)

    # Public URLs of the local backend point here
    if isinstance(storage, LocalStorageBackend):
        app.mount("/storage", StaticFiles(directory=str(storage.root)), name="storage")

    return app
