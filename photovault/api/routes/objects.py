"""
Object download endpoint.

Every read of an uploaded object goes through here. The broker checks
existence and the object's ACL policy before the response starts, so a
denied or missing object never produces a partial body.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from ...core.objects.paths import path_for_key
from ..dependencies import ObjectStorageDep, RequesterId

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{key:path}",
    response_class=StreamingResponse,
    summary="Download an object",
    description="Stream object bytes if the caller may read them",
    responses={
        403: {"description": "Access denied"},
        404: {"description": "Object not found"},
    },
)
async def serve_object(
    key: str,
    storage: ObjectStorageDep,
    requester_id: RequesterId,
) -> StreamingResponse:
    """
    Serve an object by its canonical path.

    Errors are raised as ObjectStorageError and mapped to 404/403/500 by
    the application's exception handler.
    """
    object_path = path_for_key(key)
    download = await storage.open_download(object_path, requester_id)

    logger.debug(
        "Serving object",
        extra={
            "object_path": object_path,
            "user_id": requester_id or "anonymous",
            "content_length": download.headers["Content-Length"],
        }
    )

    return StreamingResponse(
        download.chunks,
        media_type=download.content_type,
        headers=download.headers,
    )
