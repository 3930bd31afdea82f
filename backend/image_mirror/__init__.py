"""
Image Mirror Module

Mirrors short-lived, hotlink-protected Discord CDN images into durable
object storage and serves them from stable paths.

Features:
- Host/path allow-list validation of source URLs
- Fetch with fallback (mirror host swap, query stripping) on 403
- Deterministic date/hash storage keys
- Memory, file and S3-compatible storage backends
"""

from .app import create_app
from .config import MirrorSettings
from .errors import ErrorKind, MirrorError
from .service import MirrorService

__all__ = ["create_app", "MirrorSettings", "MirrorService", "ErrorKind", "MirrorError"]
