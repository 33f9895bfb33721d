"""
Object upload credentials, ACL policies and access-gated downloads.
"""

from .access import can_access
from .backend import StorageBackend
from .broker import (
    ACL_POLICY_METADATA_KEY,
    UPLOAD_CREDENTIAL_TTL,
    ObjectDownload,
    ObjectHandle,
    ObjectStorageService,
)
from .errors import ObjectStorageError, StorageErrorKind
from .models import AclPolicy, ObjectProperties, Permission, UploadCredential, Visibility
from .paths import OBJECT_PATH_PREFIX, normalize_object_path

__all__ = [
    "ACL_POLICY_METADATA_KEY",
    "OBJECT_PATH_PREFIX",
    "UPLOAD_CREDENTIAL_TTL",
    "AclPolicy",
    "ObjectDownload",
    "ObjectHandle",
    "ObjectProperties",
    "ObjectStorageError",
    "ObjectStorageService",
    "Permission",
    "StorageBackend",
    "StorageErrorKind",
    "UploadCredential",
    "Visibility",
    "can_access",
    "normalize_object_path",
]
