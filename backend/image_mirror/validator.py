"""
Source URL validation.

Decides whether a candidate string names an image on the source CDN.
Parsing is total: malformed input yields None / False, never an exception.
"""

import logging
from typing import Optional
from urllib.parse import SplitResult, urlsplit, urlunsplit

from .config import MirrorSettings

logger = logging.getLogger(__name__)


def parse_url(url: str) -> Optional[SplitResult]:
    """
    Parse an absolute http(s) URL.

    Returns:
        The split URL, or None if it is not a usable absolute URL.
    """
    if not isinstance(url, str) or not url:
        return None
    try:
        parsed = urlsplit(url.strip())
        # .hostname/.port raise on malformed netlocs
        host = parsed.hostname
        parsed.port
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not host:
        return None
    return parsed


def is_acceptable(url: str, settings: MirrorSettings) -> bool:
    """
    Check host allow-list and path markers.

    Query parameters are not inspected: they are per-request signing
    tokens, not part of the image identity.
    """
    parsed = parse_url(url)
    if parsed is None:
        return False

    if parsed.hostname not in settings.allowed_hosts:
        logger.debug(f"[Validator] Host not allowed: {parsed.hostname}")
        return False

    return any(marker in parsed.path for marker in settings.path_markers)


DEFAULT_PORTS = {"http": 80, "https": 443}


def strip_query(url: str) -> str:
    """Remove the whole query string; unparseable input is returned unchanged."""
    parsed = parse_url(url)
    if parsed is None:
        return url
    return urlunsplit(parsed._replace(query=""))


def canonical_url(url: str) -> str:
    """
    Query-stripped URL with a lowercased host and no default port.

    Spellings of the same image that the validator accepts alike
    (host case, explicit :443) map to one string.
    """
    parsed = parse_url(url)
    if parsed is None:
        return url
    netloc = f"[{parsed.hostname}]" if ":" in parsed.hostname else parsed.hostname
    if parsed.port is not None and parsed.port != DEFAULT_PORTS.get(parsed.scheme):
        netloc = f"{netloc}:{parsed.port}"
    return urlunsplit(parsed._replace(scheme=parsed.scheme.lower(), netloc=netloc, query=""))
