"""
Repository for photo records.

Photo rows (title, owner, image path) belong to the relational store,
which is not part of this service. The broker only needs to know which
object path a record points at and who created it, so the repository
protocol is deliberately narrow.

The in-memory implementation backs local development and tests.
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class Photo:
    """A published photo and the object path of its image."""
    id: int
    user_id: str
    title: str
    url: str
    description: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PhotoNotFoundError(Exception):
    """Raised when a requested photo doesn't exist."""
    pass


class PhotoRepository(Protocol):
    def create_photo(
        self,
        user_id: str,
        title: str,
        url: str,
        description: Optional[str] = None,
    ) -> Photo: ...

    def get_photo(self, photo_id: int) -> Photo: ...

    def delete_photo(self, photo_id: int) -> None: ...


class InMemoryPhotoRepository:
    """
    Dictionary-backed photo repository.

    Not suitable for production; records vanish with the process.
    """

    def __init__(self) -> None:
        self._photos: dict[int, Photo] = {}
        self._ids = itertools.count(1)

    def create_photo(
        self,
        user_id: str,
        title: str,
        url: str,
        description: Optional[str] = None,
    ) -> Photo:
        photo = Photo(
            id=next(self._ids),
            user_id=user_id,
            title=title,
            url=url,
            description=description,
        )
        self._photos[photo.id] = photo

        logger.debug(
            "Stored photo record",
            extra={"photo_id": photo.id, "user_id": user_id}
        )

        return photo

    def get_photo(self, photo_id: int) -> Photo:
        photo = self._photos.get(photo_id)
        if photo is None:
            raise PhotoNotFoundError(f"Photo {photo_id} not found")
        return photo

    def delete_photo(self, photo_id: int) -> None:
        if self._photos.pop(photo_id, None) is None:
            raise PhotoNotFoundError(f"Photo {photo_id} not found")
