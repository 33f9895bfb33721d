"""
Photo record endpoints.

Only the parts of the photo API that touch object storage live here:
creating a photo attaches the owner's ACL policy to the uploaded image,
and deleting one removes the image. Feed, comments and ratings are
served elsewhere.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.objects.errors import ObjectStorageError, StorageErrorKind
from ...core.objects.models import AclPolicy, Visibility
from ...core.objects.paths import is_managed_path
from ...infrastructure.photos.repository import Photo, PhotoNotFoundError
from ..dependencies import AuthenticatedUser, ObjectStorageDep, PhotoRepositoryDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class PhotoCreateRequest(BaseModel):
    """A photo to publish, pointing at an already uploaded image."""
    title: str = Field(min_length=1, max_length=200, description="Photo title")
    url: str = Field(min_length=1, description="Object path returned by the upload endpoint")
    description: Optional[str] = Field(None, max_length=2000)


class PhotoResponse(BaseModel):
    """A stored photo record."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    user_id: str = Field(alias="userId")
    title: str
    url: str
    description: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_photo(cls, photo: Photo) -> "PhotoResponse":
        return cls(
            id=photo.id,
            user_id=photo.user_id,
            title=photo.title,
            url=photo.url,
            description=photo.description,
            created_at=photo.created_at,
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=PhotoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Publish a photo",
    description="Create a photo record and make its uploaded image public",
)
async def create_photo(
    request: PhotoCreateRequest,
    user_id: AuthenticatedUser,
    storage: ObjectStorageDep,
    repository: PhotoRepositoryDep,
) -> PhotoResponse:
    """
    Create a photo owned by the caller.

    The image's ACL policy is attached once, here. An image already
    owned by someone else is rejected with 403. Any other failed
    attachment is logged but does not block the record; the object then
    stays readable under the no-policy default.
    """
    url = request.url

    try:
        url = await storage.attach_policy_if_managed(
            url,
            AclPolicy(owner=user_id, visibility=Visibility.PUBLIC),
        )
    except ObjectStorageError as e:
        if e.kind is StorageErrorKind.ACCESS_DENIED:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Image belongs to another user",
            )
        url = storage.normalize_object_path(url)
        logger.error(
            "Failed to set ACL policy",
            extra={"url": url, "user_id": user_id, "error": str(e), "kind": e.kind.value}
        )

    photo = repository.create_photo(
        user_id=user_id,
        title=request.title,
        url=url,
        description=request.description,
    )

    logger.info(
        "Photo created",
        extra={"photo_id": photo.id, "user_id": user_id, "url": url}
    )

    return PhotoResponse.from_photo(photo)


@router.get(
    "/{photo_id}",
    response_model=PhotoResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a photo",
)
async def get_photo(
    photo_id: int,
    repository: PhotoRepositoryDep,
) -> PhotoResponse:
    try:
        photo = repository.get_photo(photo_id)
    except PhotoNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Photo not found",
        )
    return PhotoResponse.from_photo(photo)


@router.delete(
    "/{photo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a photo",
    description="Delete a photo record and its stored image. Owner only.",
)
async def delete_photo(
    photo_id: int,
    user_id: AuthenticatedUser,
    storage: ObjectStorageDep,
    repository: PhotoRepositoryDep,
) -> Response:
    try:
        photo = repository.get_photo(photo_id)
    except PhotoNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Photo not found",
        )

    if photo.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the owner can delete this photo",
        )

    if is_managed_path(photo.url):
        try:
            await storage.delete_object(photo.url)
        except ObjectStorageError as e:
            # the image is already gone; the record can still go
            if e.kind is not StorageErrorKind.NOT_FOUND:
                raise
            logger.warning(
                "Photo image already missing",
                extra={"photo_id": photo_id, "url": photo.url}
            )

    repository.delete_photo(photo_id)

    logger.info("Photo deleted", extra={"photo_id": photo_id, "user_id": user_id})

    return Response(status_code=status.HTTP_204_NO_CONTENT)
