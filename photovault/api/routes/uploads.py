"""
Upload credential endpoint.

Clients never send photo bytes through this service. They ask for a
signed URL, PUT the file straight to object storage, and then reference
the returned object path when creating the photo record.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.objects.errors import ObjectStorageError
from ..dependencies import ObjectStorageDep, RequesterId

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class UploadUrlRequest(BaseModel):
    """Description of the file the client is about to upload."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, description="Original filename")
    size: Optional[int] = Field(None, ge=0, description="File size in bytes")
    content_type: Optional[str] = Field(None, alias="contentType", description="MIME type")


class UploadMetadata(BaseModel):
    """Echo of the client's file description."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    size: Optional[int] = None
    content_type: Optional[str] = Field(None, alias="contentType")


class UploadUrlResponse(BaseModel):
    """Signed upload URL and the path the object will be served from."""
    model_config = ConfigDict(populate_by_name=True)

    upload_url: str = Field(alias="uploadURL", description="Signed URL to PUT the file to")
    object_path: str = Field(alias="objectPath", description="Canonical path of the object")
    metadata: UploadMetadata


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/request-url",
    response_model=UploadUrlResponse,
    status_code=status.HTTP_200_OK,
    summary="Request an upload URL",
    description="Issue a 15-minute, write-only signed URL for a new object",
)
async def request_upload_url(
    request: UploadUrlRequest,
    storage: ObjectStorageDep,
    requester_id: RequesterId,
) -> UploadUrlResponse:
    if not request.name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required field: name",
        )

    try:
        credential = await storage.issue_upload_credential()
    except ObjectStorageError as e:
        logger.error(
            "Failed to generate upload URL",
            extra={"error": str(e), "kind": e.kind.value}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate upload URL",
        )

    logger.info(
        "Upload URL issued",
        extra={
            "object_path": credential.object_path,
            "file_name": request.name,
            "user_id": requester_id or "anonymous",
        }
    )

    return UploadUrlResponse(
        upload_url=credential.upload_url,
        object_path=credential.object_path,
        metadata=UploadMetadata(
            name=request.name,
            size=request.size,
            content_type=request.content_type,
        ),
    )
