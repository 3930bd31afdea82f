"""
Mirror service: the write path (validate, fetch, derive key, persist) and
the read path (direct lookup by storage path).
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .cache_keys import derive_storage_path
from .config import MirrorSettings
from .errors import validation_error
from .fetcher import FetchStrategist
from .storage import CacheStoreGateway, StoredObject
from .validator import is_acceptable

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheResult:
    """Outcome of a successful write."""
    cached_url: str
    original_url: str
    final_url: str
    hash: str
    path: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MirrorService:
    """Wires the validator, strategist, key deriver and gateway together."""

    def __init__(
        self,
        settings: MirrorSettings,
        strategist: FetchStrategist,
        gateway: CacheStoreGateway,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.strategist = strategist
        self.gateway = gateway
        self.clock = clock

    def public_url(self, path: str) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}/{path}"

    async def cache(self, source_url: str) -> CacheResult:
        """
        Mirror one source image.

        An existing object at the derived path is overwritten, not reused.

        Raises:
            MirrorError: VALIDATION, FETCH or STORAGE
        """
        if not is_acceptable(source_url, self.settings):
            logger.warning(f"[Mirror] Rejected URL: {str(source_url)[:80]}")
            raise validation_error(
                f"Invalid {self.settings.source_name} URL",
                provided_url=source_url,
            )

        image = await self.strategist.fetch(source_url)

        storage_path = derive_storage_path(source_url, self.clock(), image.extension)
        await self.gateway.put(storage_path.key, image.content, image.content_type)

        logger.info(
            f"[Mirror] Cached {source_url[:60]}... -> {storage_path.key} "
            f"({len(image.attempts)} attempt(s))"
        )
        return CacheResult(
            cached_url=self.public_url(storage_path.key),
            original_url=source_url,
            final_url=image.final_url,
            hash=storage_path.short_hash,
            path=storage_path.key,
        )

    async def lookup(self, path: str) -> Optional[StoredObject]:
        """Return the object stored at `path`, or None."""
        return await self.gateway.get(path)

    async def close(self) -> None:
        await self.strategist.close()
        await self.gateway.close()
