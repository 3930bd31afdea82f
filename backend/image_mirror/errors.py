"""
Mirror error taxonomy.

Every failure the core can report is a MirrorError tagged with an ErrorKind.
The HTTP layer decides status codes; nothing here knows about responses.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INPUT = "input"              # Missing/malformed request body
    VALIDATION = "validation"    # URL, content type or extension rejected
    FETCH = "fetch"              # Every attempted URL variant failed
    STORAGE = "storage"          # Object store read/write failed


class MirrorError(Exception):
    """A classified failure with client-facing context."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        upstream_status: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.upstream_status = upstream_status
        self.context: Dict[str, Any] = context

    def to_payload(self) -> Dict[str, Any]:
        """Structured body: status, message, then any context fields."""
        return {"status": "error", "message": self.message, **self.context}

    def __repr__(self) -> str:
        return f"MirrorError({self.kind.value}, {self.message!r})"


def input_error(message: str, **context: Any) -> MirrorError:
    return MirrorError(ErrorKind.INPUT, message, **context)


def validation_error(message: str, **context: Any) -> MirrorError:
    return MirrorError(ErrorKind.VALIDATION, message, **context)


def fetch_error(message: str, upstream_status: Optional[int] = None, **context: Any) -> MirrorError:
    return MirrorError(ErrorKind.FETCH, message, upstream_status=upstream_status, **context)


def storage_error(message: str, **context: Any) -> MirrorError:
    return MirrorError(ErrorKind.STORAGE, message, **context)
