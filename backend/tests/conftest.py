"""
Image mirror test configuration.

Fixtures build the service against an in-memory object store and a fake
CDN served through httpx.MockTransport, so no test touches the network.

Key pieces:
- FakeCDN: records every request and answers with a per-test responder
- make_service: MirrorService with a fixed clock and the fake CDN
- make_client: FastAPI TestClient over create_app(service=...)
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List

import httpx
import pytest
from botocore.exceptions import ClientError, ParamValidationError
from fastapi.testclient import TestClient

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from image_mirror.app import create_app
from image_mirror.config import MirrorSettings
from image_mirror.fetcher import FetchStrategist
from image_mirror.service import MirrorService
from image_mirror.storage import CacheStoreGateway, MemoryObjectStore


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
FIXED_NOW = datetime(2025, 3, 14, 12, 30, tzinfo=timezone.utc)

CDN_URL = "https://cdn.discordapp.com/attachments/111/222/photo.png"
SIGNED_CDN_URL = CDN_URL + "?ex=65f1a2b3&is=65dc2db3&hm=deadbeef"


# ============================================
# Fake CDN
# ============================================

class FakeCDN:
    """
    Callable MockTransport handler.

    Usage:
        cdn = FakeCDN(lambda request: httpx.Response(200, ...))
        client = httpx.AsyncClient(transport=httpx.MockTransport(cdn))
    """

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]


def image_response(content: bytes = PNG_BYTES, content_type: str = "image/png") -> httpx.Response:
    return httpx.Response(200, content=content, headers={"content-type": content_type})


def always_ok(request: httpx.Request) -> httpx.Response:
    return image_response()


# ============================================
# Fake S3
# ============================================

class FakeBody:
    def __init__(self, data: bytes):
        self._data = data

    async def read(self) -> bytes:
        return self._data


class FakeS3Client:
    """
    Minimal stand-in for an aioboto3 S3 client.

    Like botocore, rejects empty keys before any request is made.
    """

    def __init__(self, fail_with: str = ""):
        self.objects = {}
        self.fail_with = fail_with
        self.calls = 0

    def _error(self, operation: str) -> ClientError:
        return ClientError({"Error": {"Code": self.fail_with, "Message": "boom"}}, operation)

    def _check_key(self, key: str) -> None:
        self.calls += 1
        if not key:
            raise ParamValidationError(
                report="Invalid length for parameter Key, value: 0, valid min length: 1"
            )

    async def put_object(self, Bucket, Key, Body, ContentType, CacheControl):
        self._check_key(Key)
        if self.fail_with:
            raise self._error("PutObject")
        self.objects[(Bucket, Key)] = (Body, ContentType, CacheControl)

    async def get_object(self, Bucket, Key):
        self._check_key(Key)
        if self.fail_with:
            raise self._error("GetObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        body, content_type, cache_control = self.objects[(Bucket, Key)]
        return {"Body": FakeBody(body), "ContentType": content_type, "CacheControl": cache_control}


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def settings():
    """Default settings with the in-memory backend."""
    return MirrorSettings(storage_backend="memory")


@pytest.fixture
def memory_store():
    return MemoryObjectStore()


@pytest.fixture
def make_strategist(settings):
    """Factory: FetchStrategist wired to a FakeCDN."""
    def _make(cdn: FakeCDN) -> FetchStrategist:
        client = httpx.AsyncClient(transport=httpx.MockTransport(cdn))
        return FetchStrategist(settings, http_client=client)
    return _make


@pytest.fixture
def make_service(settings, memory_store, make_strategist):
    """Factory: MirrorService over the memory store with a fixed clock."""
    def _make(cdn: FakeCDN, clock: Callable[[], datetime] = lambda: FIXED_NOW) -> MirrorService:
        return MirrorService(
            settings=settings,
            strategist=make_strategist(cdn),
            gateway=CacheStoreGateway(memory_store),
            clock=clock,
        )
    return _make


@pytest.fixture
def make_client(make_service):
    """Factory: TestClient for an app around a FakeCDN-backed service."""
    def _make(cdn: FakeCDN) -> TestClient:
        app = create_app(service=make_service(cdn))
        return TestClient(app, raise_server_exceptions=False)
    return _make
