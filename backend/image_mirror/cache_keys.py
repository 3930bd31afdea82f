"""
Deterministic storage paths for mirrored images.

Layout: {YYYYMMDD}/{hash8}.{ext}
The hash covers the source URL without its query string, so signed or
cache-busting parameters never change the key.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone

from .validator import canonical_url

HASH_LENGTH = 8


@dataclass(frozen=True)
class StoragePath:
    """A derived cache key."""
    date_prefix: str
    short_hash: str
    extension: str

    @property
    def key(self) -> str:
        return f"{self.date_prefix}/{self.short_hash}.{self.extension}"

    def __str__(self) -> str:
        return self.key


def short_hash(url: str) -> str:
    """First 8 hex chars of SHA-256 over the canonical, query-stripped URL."""
    normalized = canonical_url(url)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def date_prefix(now: datetime) -> str:
    """UTC calendar date as YYYYMMDD. Naive datetimes are taken as UTC."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y%m%d")


def derive_storage_path(source_url: str, now: datetime, extension: str) -> StoragePath:
    """
    Compute the storage path for an image.

    Args:
        source_url: The URL as submitted by the caller (not a fallback variant)
        now: Current time
        extension: Extension of the URL variant that was actually fetched
    """
    return StoragePath(
        date_prefix=date_prefix(now),
        short_hash=short_hash(source_url),
        extension=extension.lower(),
    )
