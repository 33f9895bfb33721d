"""
Upload target for the in-memory storage backend.

Only mounted when STORAGE_MOCK_MODE is on. It stands in for the R2
endpoint a browser would PUT to, so the request-url, upload and publish
flow works end to end without real object storage.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status

from ...infrastructure.storage.client import MockStorageBackend
from ..dependencies import ObjectStorageDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.put(
    "/{container}/{key:path}",
    status_code=status.HTTP_200_OK,
    summary="Upload through a mock signed URL",
    responses={
        403: {"description": "Signature invalid or expired"},
        404: {"description": "Unknown container"},
    },
)
async def put_object(
    container: str,
    key: str,
    request: Request,
    storage: ObjectStorageDep,
) -> Response:
    backend = storage.backend
    if not isinstance(backend, MockStorageBackend) or container != backend.container:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Container not found",
        )

    # ACCESS_DENIED is rendered as 403 by the application's handler
    backend.verify_upload(key, dict(request.query_params))

    data = await request.body()
    backend.put_object(
        key,
        data,
        content_type=request.headers.get("content-type"),
    )

    logger.info(
        "Stored mock upload",
        extra={"key": key, "content_length": len(data)}
    )

    return Response(status_code=status.HTTP_200_OK)
