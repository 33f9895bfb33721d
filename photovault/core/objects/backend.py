"""
Storage backend port.

The broker only needs a handful of raw object operations. Defining them
here keeps core free of any storage SDK; infrastructure supplies the
implementations (S3/R2 and an in-memory mock).
"""

from datetime import timedelta
from typing import AsyncIterator, Optional, Protocol

from .models import ObjectProperties


class StorageBackend(Protocol):
    """
    Raw object operations against one container.

    Every method that touches the network is async so a slow backend
    call never blocks other requests. Implementations raise
    ObjectStorageError for anything the broker should surface.
    """

    @property
    def public_base_url(self) -> str:
        """Fully-qualified URL prefix of the container."""
        ...

    async def ensure_container(self) -> None:
        """Create the container if it does not exist yet."""
        ...

    async def generate_upload_url(self, key: str, expires_in: timedelta) -> str:
        """Sign a create/write-only HTTPS URL for one key."""
        ...

    async def get_properties(self, key: str) -> Optional[ObjectProperties]:
        """Return object properties, or None when the key is absent."""
        ...

    async def replace_metadata(
        self,
        key: str,
        metadata: dict[str, str],
        properties: Optional[ObjectProperties] = None,
    ) -> None:
        """
        Overwrite the full user metadata map of an object.

        Content type and the other system headers in ``properties`` are
        kept; without them the backend may reset those headers.
        """
        ...

    async def open_stream(
        self,
        key: str,
        chunk_size: int,
    ) -> Optional[AsyncIterator[bytes]]:
        """Open the object body. None when the backend has no readable stream."""
        ...

    async def delete_object(self, key: str) -> None:
        """Delete an object."""
        ...
