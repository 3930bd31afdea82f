"""
Cache Store Gateway

Write path: persist fetched bytes under a derived key with content-type
and immutable cache-control metadata.
Read path: look up a key and return its bytes and metadata.

Absence is a normal outcome (None); backend failures raise a STORAGE
MirrorError. The gateway exposes no listing, deletion or update.

Backends:
- MemoryObjectStore: in-process dict (tests, development)
- FileObjectStore: files under a root directory with JSON metadata sidecars
- S3ObjectStore: any S3-compatible bucket (e.g. Cloudflare R2) via aioboto3
"""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import IMMUTABLE_CACHE_CONTROL, MirrorSettings
from .errors import storage_error

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StoredObject:
    """A persisted image and its metadata."""
    key: str
    body: bytes
    content_type: Optional[str] = None
    cache_control: Optional[str] = None


class ObjectStore(Protocol):
    """Opaque key/value blob store with metadata."""

    async def put(self, key: str, body: bytes, content_type: str, cache_control: str) -> None: ...

    async def get(self, key: str) -> Optional[StoredObject]: ...

    async def close(self) -> None: ...


# ============================================
# Memory backend
# ============================================

class MemoryObjectStore:
    """In-process object store. Contents are lost on restart."""

    def __init__(self):
        self._objects: Dict[str, StoredObject] = {}
        self._lock = asyncio.Lock()

    async def put(self, key: str, body: bytes, content_type: str, cache_control: str) -> None:
        async with self._lock:
            self._objects[key] = StoredObject(
                key=key,
                body=bytes(body),
                content_type=content_type,
                cache_control=cache_control,
            )

    async def get(self, key: str) -> Optional[StoredObject]:
        async with self._lock:
            return self._objects.get(key)

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._objects)


# ============================================
# File backend
# ============================================

class FileObjectStore:
    """
    Stores objects as files under a root directory.

    Layout:
    root/
    ├── 20250101/
    │   ├── a1b2c3d4.png
    │   └── a1b2c3d4.png.meta.json
    └── ...
    """

    META_SUFFIX = ".meta.json"

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[Store] File storage directory: {self.root_dir}")

    def _resolve(self, key: str) -> Optional[Path]:
        """Map a key to a file path; None if it escapes the root or names a sidecar."""
        if not key or key.endswith(self.META_SUFFIX):
            return None
        root = self.root_dir.resolve()
        candidate = root.joinpath(*key.split("/")).resolve(strict=False)
        if candidate == root or root not in candidate.parents:
            return None
        return candidate

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        """Write to a temp file in the same directory, then rename over the target."""
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def put(self, key: str, body: bytes, content_type: str, cache_control: str) -> None:
        path = self._resolve(key)
        if path is None:
            raise storage_error("Failed to store image", path=key)

        metadata = {"content_type": content_type, "cache_control": cache_control}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Metadata first: a visible body always has its sidecar
            self._write_atomic(path.with_name(path.name + self.META_SUFFIX), json.dumps(metadata).encode("utf-8"))
            self._write_atomic(path, body)
        except OSError as e:
            logger.error(f"[Store] Failed to write {key}: {e}")
            raise storage_error("Failed to store image", path=key) from e

    async def get(self, key: str) -> Optional[StoredObject]:
        path = self._resolve(key)
        if path is None or not path.is_file():
            return None

        meta_path = path.with_name(path.name + self.META_SUFFIX)
        try:
            with open(path, "rb") as f:
                body = f.read()
            metadata: Dict[str, Any] = {}
            if meta_path.exists():
                with open(meta_path, "r") as f:
                    metadata = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"[Store] Failed to read {key}: {e}")
            raise storage_error("Failed to read image", path=key) from e

        return StoredObject(
            key=key,
            body=body,
            content_type=metadata.get("content_type"),
            cache_control=metadata.get("cache_control"),
        )

    async def close(self) -> None:
        return None


# ============================================
# S3 backend
# ============================================

class S3ObjectStore:
    """
    Stores objects in an S3-compatible bucket.

    The aioboto3 client is created on first use. Credentials come from the
    standard AWS_* environment variables.
    """

    NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        region_name: str = "auto",
        client: Optional[Any] = None,
    ):
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url or os.environ.get("AWS_ENDPOINT_URL")
        self.region_name = region_name
        self._client = client
        self._client_context: Optional[Any] = None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> Any:
        async with self._client_lock:
            if self._client is None:
                session = aioboto3.Session(
                    aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
                    aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
                    region_name=self.region_name,
                )
                self._client_context = session.client("s3", endpoint_url=self.endpoint_url)
                self._client = await self._client_context.__aenter__()
                logger.info(f"[Store] S3 client ready for bucket {self.bucket_name}")
            return self._client

    async def put(self, key: str, body: bytes, content_type: str, cache_control: str) -> None:
        client = await self._get_client()
        try:
            await client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentType=content_type,
                CacheControl=cache_control,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[Store] S3 put failed for {key}: {e}")
            raise storage_error("Failed to store image", path=key) from e

    async def get(self, key: str) -> Optional[StoredObject]:
        if not key:
            return None
        client = await self._get_client()
        try:
            response = await client.get_object(Bucket=self.bucket_name, Key=key)
            body = await response["Body"].read()
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in self.NOT_FOUND_CODES:
                return None
            logger.error(f"[Store] S3 get failed for {key}: {error_code}")
            raise storage_error("Failed to read image", path=key) from e
        except BotoCoreError as e:
            logger.error(f"[Store] S3 get failed for {key}: {e}")
            raise storage_error("Failed to read image", path=key) from e

        return StoredObject(
            key=key,
            body=body,
            content_type=response.get("ContentType"),
            cache_control=response.get("CacheControl"),
        )

    async def close(self) -> None:
        if self._client_context is not None:
            await self._client_context.__aexit__(None, None, None)
            self._client_context = None
            self._client = None


def build_object_store(settings: MirrorSettings) -> ObjectStore:
    """Create the backend named by settings.storage_backend."""
    backend = settings.storage_backend.lower()
    if backend == "memory":
        return MemoryObjectStore()
    if backend == "file":
        return FileObjectStore(settings.storage_dir)
    if backend == "s3":
        return S3ObjectStore(
            bucket_name=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
        )
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


# ============================================
# Gateway
# ============================================

class CacheStoreGateway:
    """Put/get access to mirrored images. Writes overwrite; nothing is versioned."""

    def __init__(self, store: ObjectStore, cache_control: str = IMMUTABLE_CACHE_CONTROL):
        self.store = store
        self.cache_control = cache_control

    async def put(self, path: str, content: bytes, content_type: str) -> None:
        """
        Persist an image.

        Raises:
            MirrorError: STORAGE if the backend write fails
        """
        await self.store.put(str(path), content, content_type, self.cache_control)
        logger.info(f"[Store] Stored: {path} ({len(content)} bytes, {content_type})")

    async def get(self, path: str) -> Optional[StoredObject]:
        """
        Look up an image.

        Returns:
            The stored object, or None if nothing exists at `path`.

        Raises:
            MirrorError: STORAGE if the backend read fails
        """
        # Backends such as S3 reject empty keys outright
        if not path:
            return None
        stored = await self.store.get(path)
        if stored is None:
            logger.debug(f"[Store] Miss: {path}")
        return stored

    async def close(self) -> None:
        await self.store.close()
