"""
Object storage backends for uploaded photos.

Supports Cloudflare R2 (or any S3-compatible service) with a mock mode
for local development. The broker never talks to boto3 directly; it
goes through the StorageBackend protocol so tests can use the in-memory
backend and we can swap providers without touching access control.

Mock mode keeps objects in memory and hands out locally signed URLs,
enabling API testing without provisioning a bucket.
"""

import asyncio
import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ...config.settings import Settings
from ...core.objects.backend import StorageBackend
from ...core.objects.errors import ObjectStorageError
from ...core.objects.models import ObjectProperties

logger = logging.getLogger(__name__)

# Error codes S3-compatible services use for a missing key or bucket
_MISSING_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}

# Object headers that a REPLACE self-copy drops unless passed again
_SYSTEM_HEADERS = (
    ("content_type", "ContentType"),
    ("cache_control", "CacheControl"),
    ("content_disposition", "ContentDisposition"),
    ("content_encoding", "ContentEncoding"),
)


@dataclass(frozen=True)
class BackendConfig:
    """
    Resolved connection settings for the storage backend.

    Frozen: built once at startup and shared by every request.
    """
    account_name: str
    account_key: str
    container: str
    endpoint_url: str
    public_base_url: str
    access_key_id: str = ""
    region: str = "auto"

    @property
    def key_id(self) -> str:
        return self.access_key_id or self.account_name


def resolve_backend_config(settings: Settings) -> BackendConfig:
    """
    Build the backend configuration from settings.

    Raises a CONFIGURATION error when the account identity or secret is
    missing. Call this at startup, not per request.
    """
    missing = []
    if not settings.storage_account_name:
        missing.append("STORAGE_ACCOUNT_NAME")
    if not settings.storage_account_key:
        missing.append("STORAGE_ACCOUNT_KEY")
    if missing:
        raise ObjectStorageError.configuration(
            f"Object storage not configured. Set {' and '.join(missing)}."
        )

    endpoint = settings.storage_endpoint
    if not endpoint.startswith("https://"):
        raise ObjectStorageError.configuration(
            f"Storage endpoint must use https: {endpoint}"
        )

    return BackendConfig(
        account_name=settings.storage_account_name,
        account_key=settings.storage_account_key,
        container=settings.storage_container,
        endpoint_url=endpoint,
        public_base_url=settings.storage_public_base,
        access_key_id=settings.storage_access_key_id,
        region=settings.storage_region,
    )


def _error_code(error: Exception) -> str:
    response = getattr(error, "response", None) or {}
    return str(response.get("Error", {}).get("Code", ""))


class S3StorageBackend:
    """
    Cloudflare R2 / S3 object storage backend.

    Uses boto3 because R2 is S3-compatible. boto3 is synchronous, so each
    call runs in a worker thread via asyncio.to_thread.
    """

    def __init__(self, config: BackendConfig) -> None:
        self._config = config

        # R2 requires v4 signatures and path-style addressing
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.key_id,
            aws_secret_access_key=config.account_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 storage backend",
            extra={
                "bucket": config.container,
                "endpoint": config.endpoint_url,
            }
        )

    @property
    def public_base_url(self) -> str:
        return self._config.public_base_url

    async def ensure_container(self) -> None:
        bucket = self._config.container
        try:
            await asyncio.to_thread(self._s3_client.head_bucket, Bucket=bucket)
            return
        except ClientError as e:
            if _error_code(e) not in _MISSING_CODES:
                logger.error(
                    "Failed to probe bucket",
                    extra={"bucket": bucket, "error": str(e)}
                )
                raise ObjectStorageError.transport(f"Bucket probe failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStorageError.transport(f"Bucket probe failed: {e}") from e

        try:
            await asyncio.to_thread(self._s3_client.create_bucket, Bucket=bucket)
            logger.info("Created bucket", extra={"bucket": bucket})
        except ClientError as e:
            # another request created it between the probe and now
            if _error_code(e) in {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}:
                return
            logger.error(
                "Failed to create bucket",
                extra={"bucket": bucket, "error": str(e)}
            )
            raise ObjectStorageError.transport(f"Bucket creation failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStorageError.transport(f"Bucket creation failed: {e}") from e

    async def generate_upload_url(self, key: str, expires_in: timedelta) -> str:
        """
        Presign a PUT for exactly one key.

        A presigned put_object only authorizes creating or overwriting that
        key; reads and deletes need their own signature. The signing time is
        now, so the window is [now, now + expires_in].
        """
        try:
            return self._s3_client.generate_presigned_url(
                'put_object',
                Params={
                    'Bucket': self._config.container,
                    'Key': key,
                },
                ExpiresIn=int(expires_in.total_seconds()),
                HttpMethod='PUT',
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to generate upload URL",
                extra={"key": key, "error": str(e)}
            )
            raise ObjectStorageError.transport(f"Upload URL generation failed: {e}") from e

    async def get_properties(self, key: str) -> Optional[ObjectProperties]:
        try:
            response = await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=self._config.container,
                Key=key,
            )
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            logger.error(
                "Failed to fetch object properties",
                extra={"key": key, "error": str(e)}
            )
            raise ObjectStorageError.transport(f"Property fetch failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStorageError.transport(f"Property fetch failed: {e}") from e

        return ObjectProperties(
            content_length=int(response.get('ContentLength', 0)),
            content_type=response.get('ContentType'),
            metadata=dict(response.get('Metadata') or {}),
            cache_control=response.get('CacheControl'),
            content_disposition=response.get('ContentDisposition'),
            content_encoding=response.get('ContentEncoding'),
        )

    async def replace_metadata(
        self,
        key: str,
        metadata: dict[str, str],
        properties: Optional[ObjectProperties] = None,
    ) -> None:
        """
        Rewrite user metadata with a self-copy.

        S3 has no in-place metadata update; copying an object onto itself
        with MetadataDirective=REPLACE is the supported way. REPLACE also
        resets ContentType, CacheControl, ContentDisposition and
        ContentEncoding, so whichever of those ``properties`` carries is
        passed again.
        """
        copy_kwargs = {
            'Bucket': self._config.container,
            'Key': key,
            'CopySource': {'Bucket': self._config.container, 'Key': key},
            'Metadata': metadata,
            'MetadataDirective': 'REPLACE',
        }
        if properties is not None:
            for attribute, param in _SYSTEM_HEADERS:
                value = getattr(properties, attribute)
                if value:
                    copy_kwargs[param] = value

        try:
            await asyncio.to_thread(self._s3_client.copy_object, **copy_kwargs)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                raise ObjectStorageError.not_found() from e
            logger.error(
                "Failed to write object metadata",
                extra={"key": key, "error": str(e)}
            )
            raise ObjectStorageError.transport(f"Metadata write failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStorageError.transport(f"Metadata write failed: {e}") from e

    async def open_stream(
        self,
        key: str,
        chunk_size: int,
    ) -> Optional[AsyncIterator[bytes]]:
        try:
            response = await asyncio.to_thread(
                self._s3_client.get_object,
                Bucket=self._config.container,
                Key=key,
            )
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                raise ObjectStorageError.not_found() from e
            logger.error(
                "Failed to open object stream",
                extra={"key": key, "error": str(e)}
            )
            raise ObjectStorageError.transport(f"Download failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStorageError.transport(f"Download failed: {e}") from e

        body = response.get('Body')
        if body is None:
            return None
        return _iter_body(body, chunk_size)

    async def delete_object(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._s3_client.delete_object,
                Bucket=self._config.container,
                Key=key,
            )
            logger.info("Deleted object", extra={"key": key})
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to delete object",
                extra={"key": key, "error": str(e)}
            )
            raise ObjectStorageError.transport(f"Delete failed: {e}") from e


async def _iter_body(body, chunk_size: int) -> AsyncIterator[bytes]:
    """Read a botocore StreamingBody chunk by chunk off the event loop."""
    try:
        while True:
            chunk = await asyncio.to_thread(body.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        body.close()


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

MOCK_STORAGE_HOST = "mock.storage.local"
UPLOAD_PERMISSIONS = "cw"  # create + write


@dataclass
class _StoredObject:
    data: bytes
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


class MockStorageBackend:
    """
    In-memory storage backend.

    Upload URLs are signed locally with HMAC so they can be verified the
    way the real service would. With ``base_url`` pointed at the app's
    mock upload route, a browser can PUT to the URL just as it would to
    R2; ``put_object`` stores what arrives.

    Not suitable for production, but perfect for development and testing.
    """

    def __init__(
        self,
        container: str = "photos",
        secret: str = "mock-secret",
        base_url: Optional[str] = None,
    ) -> None:
        self._container = container
        self._secret = secret.encode()
        self._base_url = base_url
        self._objects: dict[str, _StoredObject] = {}
        self._container_created = False
        self.streams_opened = 0
        logger.info("Initialized mock storage backend (in-memory)")

    @property
    def container(self) -> str:
        return self._container

    @property
    def public_base_url(self) -> str:
        base = self._base_url or f"https://{MOCK_STORAGE_HOST}"
        return f"{base.rstrip('/')}/{self._container}/"

    async def ensure_container(self) -> None:
        if not self._container_created:
            self._container_created = True
            logger.debug("Created mock container", extra={"container": self._container})

    async def generate_upload_url(self, key: str, expires_in: timedelta) -> str:
        starts_on = datetime.now(timezone.utc).replace(microsecond=0)
        expires_on = starts_on + expires_in
        params = {
            "sp": UPLOAD_PERMISSIONS,
            "st": starts_on.isoformat(),
            "se": expires_on.isoformat(),
            "spr": "https",
        }
        params["sig"] = self._sign(key, params)
        return f"{self.public_base_url}{quote(key)}?{urlencode(params)}"

    def verify_upload_url(self, url: str, now: Optional[datetime] = None) -> str:
        """
        Check a signed upload URL and return the key it authorizes.

        Raises ACCESS_DENIED for a tampered, expired or foreign URL.
        """
        parts = urlsplit(url)
        prefix = urlsplit(self.public_base_url).path
        if not parts.path.startswith(prefix):
            raise ObjectStorageError.access_denied("Upload URL is not valid for this container")

        key = unquote(parts.path[len(prefix):])
        params = {name: values[0] for name, values in parse_qs(parts.query).items()}
        self.verify_upload(key, params, now)
        return key

    def verify_upload(
        self,
        key: str,
        params: dict[str, str],
        now: Optional[datetime] = None,
    ) -> None:
        """Check the signed query parameters of an upload to ``key``."""
        params = dict(params)
        signature = params.pop("sig", "")
        if not hmac.compare_digest(signature, self._sign(key, params)):
            raise ObjectStorageError.access_denied("Upload URL signature mismatch")

        if params.get("sp") != UPLOAD_PERMISSIONS or params.get("spr") != "https":
            raise ObjectStorageError.access_denied("Upload URL does not grant write access")

        now = now or datetime.now(timezone.utc)
        if not datetime.fromisoformat(params["st"]) <= now <= datetime.fromisoformat(params["se"]):
            raise ObjectStorageError.access_denied("Upload URL expired")

    def put_object(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        """Store an object, as a client upload through a signed URL would."""
        self._objects[key] = _StoredObject(
            data=data,
            content_type=content_type,
            metadata=dict(metadata or {}),
        )

    async def get_properties(self, key: str) -> Optional[ObjectProperties]:
        stored = self._objects.get(key)
        if stored is None:
            return None
        return ObjectProperties(
            content_length=len(stored.data),
            content_type=stored.content_type,
            metadata=dict(stored.metadata),
        )

    async def replace_metadata(
        self,
        key: str,
        metadata: dict[str, str],
        properties: Optional[ObjectProperties] = None,
    ) -> None:
        # system headers live on the stored object and survive untouched
        stored = self._objects.get(key)
        if stored is None:
            raise ObjectStorageError.not_found()
        stored.metadata = dict(metadata)

    async def open_stream(
        self,
        key: str,
        chunk_size: int,
    ) -> Optional[AsyncIterator[bytes]]:
        stored = self._objects.get(key)
        if stored is None:
            raise ObjectStorageError.not_found()
        self.streams_opened += 1
        return _iter_bytes(stored.data, chunk_size)

    async def delete_object(self, key: str) -> None:
        if self._objects.pop(key, None) is None:
            raise ObjectStorageError.not_found()
        logger.debug("Deleted object from mock storage", extra={"key": key})

    def _sign(self, key: str, params: dict[str, str]) -> str:
        payload = "\n".join(
            [self._container, key] + [f"{name}={params[name]}" for name in sorted(params)]
        )
        digest = hmac.new(self._secret, payload.encode(), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode()


async def _iter_bytes(data: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    for offset in range(0, len(data), chunk_size):
        yield data[offset:offset + chunk_size]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_backend(
    config: Optional[BackendConfig] = None,
    mock_mode: bool = False,
    container: str = "photos",
    mock_base_url: Optional[str] = None,
) -> StorageBackend:
    """
    Create the storage backend based on configuration.

    Args:
        config: Backend configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory backend
        container: Container name for the mock backend
        mock_base_url: Where the mock backend's upload URLs point

    Returns:
        StorageBackend implementation (S3 or Mock)
    """
    if mock_mode:
        return MockStorageBackend(container=container, base_url=mock_base_url)

    if config is None:
        raise ObjectStorageError.configuration("config is required when not in mock mode")

    return S3StorageBackend(config)
