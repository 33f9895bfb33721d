"""
FastAPI dependency injection.

Dependencies provide instances of services, repositories, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Configuration is centralized

The storage service is built once in the application lifespan and kept on
``app.state``. Nothing here creates a backend client per request.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..config.settings import Settings, get_settings
from ..core.objects.broker import ObjectStorageService
from ..infrastructure.photos.repository import InMemoryPhotoRepository, PhotoRepository
from ..infrastructure.storage.client import create_storage_backend, resolve_backend_config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Construction (called once from the lifespan)
# ---------------------------------------------------------------------------

def build_object_storage(settings: Settings) -> ObjectStorageService:
    """
    Construct the object storage service for this process.

    Raises a CONFIGURATION ObjectStorageError when credentials are missing,
    which aborts startup before any traffic is served.
    """
    if settings.storage_mock_mode:
        backend = create_storage_backend(
            mock_mode=True,
            container=settings.storage_container,
            mock_base_url=settings.mock_storage_base_url,
        )
        logger.info("Using mock storage backend")
    else:
        config = resolve_backend_config(settings)
        backend = create_storage_backend(config=config)

    return ObjectStorageService(
        backend,
        cache_ttl_seconds=settings.object_cache_ttl_seconds,
        chunk_size=settings.object_stream_chunk_bytes,
    )


def build_photo_repository(settings: Settings) -> PhotoRepository:
    return InMemoryPhotoRepository()


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

async def get_requester_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """
    Caller identity resolved by the session layer.

    The session subsystem sits in front of this service and forwards the
    authenticated user ID in X-User-Id. Missing or blank means anonymous.
    """
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


async def require_user(
    requester_id: Annotated[Optional[str], Depends(get_requester_id)],
) -> str:
    """Reject anonymous callers with 401."""
    if requester_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return requester_id


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_object_storage(request: Request) -> ObjectStorageService:
    return request.app.state.object_storage


def get_photo_repository(request: Request) -> PhotoRepository:
    return request.app.state.photo_repository


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
RequesterId = Annotated[Optional[str], Depends(get_requester_id)]
AuthenticatedUser = Annotated[str, Depends(require_user)]
ObjectStorageDep = Annotated[ObjectStorageService, Depends(get_object_storage)]
PhotoRepositoryDep = Annotated[PhotoRepository, Depends(get_photo_repository)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
