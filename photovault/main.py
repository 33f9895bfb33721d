"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order

For local development:
    STORAGE_MOCK_MODE=true uvicorn photovault.main:app --reload

For production:
    gunicorn photovault.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.dependencies import build_object_storage, build_photo_repository
from .api.routes import health, mock_storage, objects, photos, uploads
from .config.settings import Settings, get_settings
from .core.objects.errors import ObjectStorageError, StorageErrorKind

logger = logging.getLogger(__name__)

# Every error kind has exactly one HTTP rendering
ERROR_RESPONSES: dict[StorageErrorKind, tuple[int, str]] = {
    StorageErrorKind.NOT_FOUND: (404, "Object not found"),
    StorageErrorKind.ACCESS_DENIED: (403, "Access denied"),
    StorageErrorKind.TRANSPORT: (500, "Failed to serve object"),
    StorageErrorKind.CONFIGURATION: (500, "Object storage is not configured"),
}


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    Pass ``settings`` to build an app with an explicit configuration
    (tests do this); otherwise settings come from the environment.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build shared resources on startup.

        Resolving storage configuration here means missing credentials
        stop the process before it accepts a single request.
        """
        logger.info(
            "PhotoVault API starting",
            extra={
                "version": settings.api_version,
                "mock_mode": {"storage": settings.storage_mock_mode},
            }
        )

        try:
            app.state.object_storage = build_object_storage(settings)
        except ObjectStorageError as e:
            logger.critical(
                "Object storage misconfigured, refusing to start",
                extra={"error": str(e)}
            )
            raise
        app.state.photo_repository = build_photo_repository(settings)

        yield

        logger.info("PhotoVault API shutting down")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Object storage broker for the photo-sharing app.

        ## Workflow

        1. **Request an upload URL**: `POST /api/uploads/request-url`
           - Returns a signed URL valid for 15 minutes and an object path

        2. **Upload**: `PUT` the file bytes to the signed URL

        3. **Publish**: `POST /api/photos` with the object path
           - The image becomes public and owned by the caller

        4. **View**: `GET /api/objects/{key}`
           - Streams the image if the caller may read it
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        uploads.router,
        prefix="/api/uploads",
        tags=["Uploads"],
    )

    app.include_router(
        objects.router,
        prefix="/api/objects",
        tags=["Objects"],
    )

    app.include_router(
        photos.router,
        prefix="/api/photos",
        tags=["Photos"],
    )

    if settings.storage_mock_mode:
        app.include_router(
            mock_storage.router,
            prefix="/mock-storage",
            tags=["Mock Storage"],
        )

    @app.exception_handler(ObjectStorageError)
    async def object_storage_exception_handler(request: Request, exc: ObjectStorageError):
        status_code, message = ERROR_RESPONSES[exc.kind]

        if status_code >= 500:
            logger.error(
                "Object storage failure",
                extra={
                    "path": request.url.path,
                    "kind": exc.kind.value,
                    "error": str(exc),
                },
                exc_info=exc,
            )

        return JSONResponse(status_code=status_code, content={"detail": message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        In production, this prevents stack traces from leaking to clients.
        We log the full error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


def _create_default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    return create_app(settings)


# This is what uvicorn/gunicorn will import
app = _create_default_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "photovault.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
