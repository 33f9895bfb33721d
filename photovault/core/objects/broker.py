"""
Object storage access-control broker.

Issues upload credentials, keeps ACL policies on the objects themselves
and gates every read through the access evaluator before a single byte
is streamed back.

Policies live in object metadata rather than a table, so checking access
never needs a join. The price is that policy writes are read-modify-write
against the backend (see ``set_acl_policy``).
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Optional
from uuid import uuid4

from .access import can_access
from .backend import StorageBackend
from .errors import ObjectStorageError
from .models import AclPolicy, ObjectProperties, Permission, UploadCredential
from .paths import (
    UPLOAD_KEY_PREFIX,
    is_managed_path,
    key_for_path,
    normalize_object_path,
    path_for_key,
)

logger = logging.getLogger(__name__)

ACL_POLICY_METADATA_KEY = "aclpolicy"
UPLOAD_CREDENTIAL_TTL = timedelta(minutes=15)
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class ObjectHandle:
    """A storage key the backend has confirmed exists."""
    key: str
    object_path: str


@dataclass
class ObjectDownload:
    """
    A fully authorized download, ready to stream.

    Everything that can fail with NOT_FOUND or ACCESS_DENIED has already
    happened by the time one of these exists. The HTTP layer only has to
    send ``headers`` and then drain ``chunks``.
    """
    headers: dict[str, str]
    chunks: AsyncIterator[bytes]

    @property
    def content_type(self) -> str:
        return self.headers["Content-Type"]


class ObjectStorageService:
    """
    Brokers uploads and reads for one storage container.

    Takes an already-constructed backend. The backend is created once at
    startup and never mutated afterwards, so one service instance can be
    shared by every request.
    """

    def __init__(
        self,
        backend: StorageBackend,
        cache_ttl_seconds: int = 3600,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self._backend = backend
        self._cache_ttl_seconds = cache_ttl_seconds
        self._chunk_size = chunk_size

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Credential issuing
    # ------------------------------------------------------------------

    async def issue_upload_credential(self) -> UploadCredential:
        """
        Mint a signed upload URL for a brand new object.

        The object does not exist yet and is not probed. The URL allows
        create/write on that one key, over HTTPS, for 15 minutes.
        """
        await self._backend.ensure_container()

        key = f"{UPLOAD_KEY_PREFIX}{uuid4()}"
        upload_url = await self._backend.generate_upload_url(key, UPLOAD_CREDENTIAL_TTL)
        object_path = path_for_key(key)

        logger.info("Issued upload credential", extra={"object_path": object_path})

        return UploadCredential(upload_url=upload_url, object_path=object_path)

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    async def get_object_handle(self, object_path: str) -> ObjectHandle:
        """
        Resolve a canonical path to a live object.

        Raises NOT_FOUND for paths outside /api/objects/ and for keys the
        backend doesn't have.
        """
        key = key_for_path(object_path)
        if key is None:
            raise ObjectStorageError.not_found()

        if await self._backend.get_properties(key) is None:
            raise ObjectStorageError.not_found()

        return ObjectHandle(key=key, object_path=object_path)

    # ------------------------------------------------------------------
    # ACL policy store
    # ------------------------------------------------------------------

    async def get_acl_policy(self, handle: ObjectHandle) -> Optional[AclPolicy]:
        """
        Read the policy attached to an object.

        Missing and malformed documents both come back as None. A
        half-written policy must never turn a read into an error.
        """
        properties = await self._backend.get_properties(handle.key)
        if properties is None:
            raise ObjectStorageError.not_found()
        return _policy_from_properties(properties, handle.key)

    async def set_acl_policy(self, handle: ObjectHandle, policy: AclPolicy) -> None:
        """
        Attach a policy, keeping every other metadata key.

        Not atomic: metadata is fetched, merged and written back. Two
        concurrent calls on the same object race and the last write wins.
        The upload workflow attaches a policy exactly once per object, so
        this is tolerated rather than guarded with conditional writes.

        The owner never changes once a policy is attached. The same owner
        may change visibility; anyone else gets ACCESS_DENIED and the
        object is left untouched.
        """
        properties = await self._backend.get_properties(handle.key)
        if properties is None:
            raise ObjectStorageError.not_found()

        existing = _policy_from_properties(properties, handle.key)
        if existing is not None and existing.owner != policy.owner:
            logger.warning(
                "Refusing to change object owner",
                extra={
                    "object_path": handle.object_path,
                    "owner": existing.owner,
                    "requested_owner": policy.owner,
                }
            )
            raise ObjectStorageError.access_denied("Object is owned by another user")

        metadata = dict(properties.metadata)
        metadata[ACL_POLICY_METADATA_KEY] = policy.to_json()
        await self._backend.replace_metadata(handle.key, metadata, properties)

        logger.info(
            "Attached ACL policy",
            extra={
                "object_path": handle.object_path,
                "owner": policy.owner,
                "visibility": policy.visibility.value,
            }
        )

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    async def open_download(
        self,
        object_path: str,
        requester_id: Optional[str] = None,
    ) -> ObjectDownload:
        """
        Authorize a read and open the object body.

        Order matters: existence, then access, then properties, then the
        stream. No body bytes are requested from the backend until the
        access check has passed, and once this returns the caller can
        commit to a 200 without any further failure points except the
        transfer itself.
        """
        key = key_for_path(object_path)
        if key is None:
            raise ObjectStorageError.not_found()

        properties = await self._backend.get_properties(key)
        if properties is None:
            raise ObjectStorageError.not_found()

        policy = _policy_from_properties(properties, key)
        if not can_access(policy, requester_id, Permission.READ):
            logger.warning(
                "Object access denied",
                extra={"object_path": object_path, "requester_id": requester_id or "anonymous"}
            )
            raise ObjectStorageError.access_denied()

        chunks = await self._backend.open_stream(key, self._chunk_size)
        if chunks is None:
            logger.error("Backend returned no readable stream", extra={"object_path": object_path})
            raise ObjectStorageError.transport("Unable to stream file")

        return ObjectDownload(
            headers=self._download_headers(properties, policy),
            chunks=chunks,
        )

    def _download_headers(
        self,
        properties: ObjectProperties,
        policy: Optional[AclPolicy],
    ) -> dict[str, str]:
        # cacheability is separate from accessibility: no policy is readable
        # by anyone but still only privately cacheable
        cache_scope = "public" if policy is not None and policy.is_public else "private"
        return {
            "Content-Type": properties.content_type or DEFAULT_CONTENT_TYPE,
            "Content-Length": str(properties.content_length),
            "Cache-Control": f"{cache_scope}, max-age={self._cache_ttl_seconds}",
        }

    # ------------------------------------------------------------------
    # Domain linkage
    # ------------------------------------------------------------------

    def normalize_object_path(self, raw_path: str) -> str:
        return normalize_object_path(raw_path, self._backend.public_base_url)

    async def attach_policy_if_managed(self, path: str, policy: AclPolicy) -> str:
        """
        Normalize a stored path and attach a policy if we manage the object.

        Paths outside /api/objects/ are returned as-is with no write;
        external URLs are not policy-controlled.
        """
        normalized = self.normalize_object_path(path)
        if not is_managed_path(normalized):
            return normalized

        handle = await self.get_object_handle(normalized)
        await self.set_acl_policy(handle, policy)
        return normalized

    async def delete_object(self, object_path: str) -> None:
        handle = await self.get_object_handle(object_path)
        await self._backend.delete_object(handle.key)
        logger.info("Deleted object", extra={"object_path": object_path})


def _policy_from_properties(properties: ObjectProperties, key: str) -> Optional[AclPolicy]:
    raw = properties.metadata.get(ACL_POLICY_METADATA_KEY)
    if not raw:
        return None
    try:
        return AclPolicy.from_json(raw)
    except ValueError as e:
        logger.warning(
            "Ignoring malformed ACL policy",
            extra={"key": key, "error": str(e)}
        )
        return None
