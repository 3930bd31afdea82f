"""
Image Mirror Configuration

Immutable settings shared by the validator, fetcher, storage and routes.
Defaults target the Discord CDN; every value can be overridden through
IMAGE_MIRROR_* environment variables.
"""

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


# ============================================
# Defaults
# ============================================

DEFAULT_ALLOWED_HOSTS = (
    "cdn.discordapp.com",
    "media.discordapp.net",
    "images-ext-1.discordapp.net",
)

# Each image is servable from either host of a pair
DEFAULT_MIRROR_HOSTS = (
    ("cdn.discordapp.com", "media.discordapp.net"),
)

DEFAULT_PATH_MARKERS = ("/attachments/", "/external/")

DEFAULT_RETAINED_PARAMS = ("format", "quality", "width", "height")

DEFAULT_ALLOWED_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")

DEFAULT_REQUEST_HEADERS = MappingProxyType({
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://discord.com/",
    "Origin": "https://discord.com",
})

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000"


def _split_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Read a comma-separated env var into a tuple, falling back to default."""
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class MirrorSettings:
    """Configuration for the mirror service."""
    # Source validation
    source_name: str = "Discord"         # Used in client-facing messages
    allowed_hosts: Tuple[str, ...] = DEFAULT_ALLOWED_HOSTS
    path_markers: Tuple[str, ...] = DEFAULT_PATH_MARKERS

    # Fetch strategy
    mirror_hosts: Tuple[Tuple[str, str], ...] = DEFAULT_MIRROR_HOSTS
    retained_params: Tuple[str, ...] = DEFAULT_RETAINED_PARAMS
    request_headers: Mapping[str, str] = field(default_factory=lambda: DEFAULT_REQUEST_HEADERS)
    request_timeout: float = 30.0        # Seconds per outbound request

    # Content validation
    allowed_extensions: Tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    image_content_prefix: str = "image/"

    # Serving
    cache_control: str = IMMUTABLE_CACHE_CONTROL
    public_base_url: str = "https://imgcdn.ww0.ca"

    # Storage backend: "memory", "file" or "s3"
    storage_backend: str = "file"
    storage_dir: str = "./image_mirror_data"
    s3_bucket: str = "image-mirror"
    s3_endpoint_url: Optional[str] = None
    s3_region: str = "auto"

    def __post_init__(self):
        # Freeze caller-supplied header dicts too
        if not isinstance(self.request_headers, MappingProxyType):
            object.__setattr__(self, "request_headers", MappingProxyType(dict(self.request_headers)))

    def mirror_of(self, host: str) -> Optional[str]:
        """Return the interchangeable host for `host`, if it has one."""
        for first, second in self.mirror_hosts:
            if host == first:
                return second
            if host == second:
                return first
        return None

    @classmethod
    def from_env(cls) -> "MirrorSettings":
        """Build settings from IMAGE_MIRROR_* environment variables."""
        return cls(
            allowed_hosts=_split_env("IMAGE_MIRROR_ALLOWED_HOSTS", DEFAULT_ALLOWED_HOSTS),
            retained_params=_split_env("IMAGE_MIRROR_RETAINED_PARAMS", DEFAULT_RETAINED_PARAMS),
            allowed_extensions=_split_env("IMAGE_MIRROR_ALLOWED_EXTENSIONS", DEFAULT_ALLOWED_EXTENSIONS),
            request_timeout=float(os.getenv("IMAGE_MIRROR_REQUEST_TIMEOUT", "30")),
            public_base_url=os.getenv("IMAGE_MIRROR_PUBLIC_BASE_URL", "https://imgcdn.ww0.ca").rstrip("/"),
            storage_backend=os.getenv("IMAGE_MIRROR_STORAGE_BACKEND", "file"),
            storage_dir=os.getenv("IMAGE_MIRROR_STORAGE_DIR", "./image_mirror_data"),
            s3_bucket=os.getenv("IMAGE_MIRROR_S3_BUCKET", "image-mirror"),
            s3_endpoint_url=os.getenv("IMAGE_MIRROR_S3_ENDPOINT_URL") or None,
            s3_region=os.getenv("IMAGE_MIRROR_S3_REGION", "auto"),
        )
