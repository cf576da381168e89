"""
Backend error — what every collaborator client returns on failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class BackendErrorKind(Enum):
    TRANSPORT = auto()  # Connection / timeout
    HTTP = auto()  # Non-2xx status
    UNAUTHORIZED = auto()  # 401/403, token missing or expired
    REJECTED = auto()  # Envelope success=false
    DECODE = auto()  # Response did not match the expected shape


@dataclass(frozen=True, slots=True)
class BackendError:
    """
    Collaborator service failure.

    Note: message is the backend's own message when it sent one.
    """

    kind: BackendErrorKind
    message: str
    status_code: int | None = None
    cause: Exception | None = None

    @property
    def is_transient(self) -> bool:
        """Worth retrying with the same request."""
        if self.kind == BackendErrorKind.TRANSPORT:
            return True
        return self.kind == BackendErrorKind.HTTP and (self.status_code or 0) >= 500


__all__ = ("BackendErrorKind", "BackendError")
