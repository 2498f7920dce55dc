"""Error taxonomy shared by the stores, the service facade and the API.

Every error carries a machine ``code`` (what the HTTP layer reports) and a
user-facing ``message``. Nothing here is retried automatically; each failure
is terminal for the request that raised it.
"""
from __future__ import annotations

from datetime import timedelta
import math
from typing import Any, Dict, Optional

__all__ = [
    "AshError",
    "ValidationError",
    "NotFoundError",
    "StateError",
    "RateLimitedError",
    "PersistenceError",
]


class AshError(Exception):
    """Base class for all domain errors."""

    code: str = "ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def extra(self) -> Dict[str, Any]:
        return {}


class ValidationError(AshError):
    """Malformed input; the message is safe to show verbatim."""

    code = "VALIDATION_ERROR"


class NotFoundError(AshError):
    """Key or session absent.

    Session lookups always use ``SESSION_INVALID`` whether the token never
    existed, expired, or was already consumed.
    """

    code = "NOT_FOUND"


class StateError(AshError):
    """The entity exists but its state forbids the operation."""

    code = "STATE_ERROR"


class RateLimitedError(StateError):
    code = "RATE_LIMITED"

    def __init__(self, retry_after: timedelta, message: Optional[str] = None):
        self.retry_after = retry_after
        self.minutes = max(1, math.ceil(retry_after.total_seconds() / 60))
        super().__init__(
            message
            or f"Demasiados intentos fallidos. Intenta nuevamente en {self.minutes} minutos."
        )

    def extra(self) -> Dict[str, Any]:
        return {"blocked": True, "minutes_remaining": self.minutes}


class PersistenceError(AshError):
    """Disk read or write failed. Details go to the log, never to the caller."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str = "No se pudo guardar la información. Intenta de nuevo."):
        super().__init__(message)
