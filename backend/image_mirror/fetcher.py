"""
Fetch Strategist

Retrieves image bytes from the source CDN, working around its
anti-hotlinking rules with an ordered fallback sequence:

1. Query reduced to the retained parameters, browser-like headers
2. On 403: same URL on the mirror host
3. Still 403: all query parameters stripped

Any other failure ends the sequence. Successful responses are checked for
an image content type and an allowed file extension.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import parse_qsl, urlencode, urlunsplit

import httpx

from .config import MirrorSettings
from .errors import fetch_error, validation_error
from .validator import parse_url, strip_query

logger = logging.getLogger(__name__)

FORBIDDEN = 403


# ============================================
# URL variants
# ============================================

def retain_params(url: str, retained: tuple) -> str:
    """Drop every query parameter not in `retained`. Unparseable input is returned unchanged."""
    parsed = parse_url(url)
    if parsed is None:
        return url
    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key in retained
    ]
    return urlunsplit(parsed._replace(query=urlencode(kept)))


def swap_host(url: str, settings: MirrorSettings) -> str:
    """Move the URL to its mirror host. Returns the input unchanged if there is none."""
    parsed = parse_url(url)
    if parsed is None:
        return url
    mirror = settings.mirror_of(parsed.hostname)
    if mirror is None:
        return url
    netloc = mirror if parsed.port is None else f"{mirror}:{parsed.port}"
    return urlunsplit(parsed._replace(netloc=netloc))


def file_extension(url: str) -> str:
    """Lowercased extension of the last path segment, or '' if it has none."""
    parsed = parse_url(url)
    path = parsed.path if parsed is not None else url.split("?", 1)[0]
    filename = path.rsplit("/", 1)[-1]
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


# ============================================
# Results
# ============================================

@dataclass
class FetchAttempt:
    """One URL variant tried during the fallback sequence."""
    url: str
    status_code: Optional[int]
    outcome: str                     # "ok", "forbidden", "http_error", "network_error"


@dataclass
class FetchedImage:
    """Image bytes plus the variant that produced them."""
    content: bytes
    content_type: str
    final_url: str
    extension: str
    attempts: List[FetchAttempt] = field(default_factory=list)

    @property
    def attempted_urls(self) -> List[str]:
        return [a.url for a in self.attempts]


# ============================================
# Strategist
# ============================================

class FetchStrategist:
    """
    Fetches source images with the fallback sequence.

    Holds no per-request state; one instance serves concurrent requests.

    Usage:
        strategist = FetchStrategist(settings)
        image = await strategist.fetch(url)
        await strategist.close()
    """

    def __init__(self, settings: MirrorSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout,
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def _attempt(self, url: str, source_url: str, attempts: List[FetchAttempt]) -> httpx.Response:
        """GET one variant and record the outcome."""
        logger.info(f"[Fetch] Trying: {url[:80]}...")
        try:
            response = await self.http_client.get(url, headers=dict(self.settings.request_headers))
        except httpx.RequestError as e:
            attempts.append(FetchAttempt(url=url, status_code=None, outcome="network_error"))
            detail = str(e) or type(e).__name__
            logger.error(f"[Fetch] Network error: {url[:60]}... - {detail}")
            raise fetch_error(
                f"Fetch error: {detail}",
                url=source_url,
                attempted_urls=[a.url for a in attempts],
            ) from e

        if response.is_success:
            outcome = "ok"
        elif response.status_code == FORBIDDEN:
            outcome = "forbidden"
        else:
            outcome = "http_error"
        attempts.append(FetchAttempt(url=url, status_code=response.status_code, outcome=outcome))
        return response

    async def fetch(self, source_url: str) -> FetchedImage:
        """
        Fetch an image, falling back on 403 responses.

        Args:
            source_url: A URL already accepted by the validator

        Returns:
            FetchedImage for the first variant that succeeded

        Raises:
            MirrorError: FETCH when every variant failed, VALIDATION when the
                response is not an acceptable image
        """
        attempts: List[FetchAttempt] = []

        url_to_try = retain_params(source_url, self.settings.retained_params)
        response = await self._attempt(url_to_try, source_url, attempts)

        if response.status_code == FORBIDDEN:
            alternative = swap_host(url_to_try, self.settings)
            if alternative != url_to_try:
                logger.info(f"[Fetch] Forbidden, trying mirror host: {alternative[:60]}...")
                url_to_try = alternative
                response = await self._attempt(url_to_try, source_url, attempts)

        if response.status_code == FORBIDDEN:
            stripped = strip_query(url_to_try)
            if stripped not in [a.url for a in attempts]:
                logger.info(f"[Fetch] Still forbidden, retrying without query: {stripped[:60]}...")
                url_to_try = stripped
                response = await self._attempt(url_to_try, source_url, attempts)

        if not response.is_success:
            logger.error(
                f"[Fetch] HTTP {response.status_code} after {len(attempts)} attempt(s): {source_url[:60]}..."
            )
            raise fetch_error(
                f"Failed to fetch {self.settings.source_name} image: "
                f"{response.status_code} {response.reason_phrase}",
                upstream_status=response.status_code,
                url=source_url,
                attempted_urls=[a.url for a in attempts],
                headers=dict(response.headers),
            )

        content_type = response.headers.get("content-type")
        if not content_type or not content_type.lower().startswith(self.settings.image_content_prefix):
            logger.warning(f"[Fetch] Non-image content-type: {content_type} for {url_to_try[:60]}...")
            raise validation_error("Invalid content type", content_type=content_type)

        extension = file_extension(url_to_try)
        if extension not in self.settings.allowed_extensions:
            logger.warning(f"[Fetch] Rejected extension '{extension}': {url_to_try[:60]}...")
            raise validation_error("Invalid file extension", extension=extension)

        logger.info(f"[Fetch] Success: {url_to_try[:60]}... ({len(response.content)} bytes)")
        return FetchedImage(
            content=response.content,
            content_type=content_type,
            final_url=url_to_try,
            extension=extension,
            attempts=attempts,
        )
