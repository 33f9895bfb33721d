"""
Error taxonomy for the object storage broker.

There is exactly one exception type. What went wrong is carried in a
closed enum so the HTTP boundary can map every kind explicitly instead
of guessing from a class hierarchy.
"""

from enum import Enum


class StorageErrorKind(Enum):
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    TRANSPORT = "transport"
    CONFIGURATION = "configuration"


class ObjectStorageError(Exception):
    """Raised when a broker or backend operation fails."""

    def __init__(self, kind: StorageErrorKind, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)

    @classmethod
    def not_found(cls, message: str = "Object not found") -> "ObjectStorageError":
        return cls(StorageErrorKind.NOT_FOUND, message)

    @classmethod
    def access_denied(cls, message: str = "Access denied") -> "ObjectStorageError":
        return cls(StorageErrorKind.ACCESS_DENIED, message)

    @classmethod
    def transport(cls, message: str) -> "ObjectStorageError":
        return cls(StorageErrorKind.TRANSPORT, message)

    @classmethod
    def configuration(cls, message: str) -> "ObjectStorageError":
        return cls(StorageErrorKind.CONFIGURATION, message)
