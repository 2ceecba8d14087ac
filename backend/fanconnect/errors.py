# fanconnect/errors.py
from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class FanConnectError(Exception):
    """Base for every error the core raises on purpose."""

    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, *, code: str | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra = extra

    def as_detail(self) -> dict:
        return {"code": self.code, "message": self.message, **self.extra}


class NotConfigured(FanConnectError):
    status_code = 503
    code = "STORE_NOT_CONFIGURED"


class StoreUnavailable(FanConnectError):
    """Transient store failure. The caller owns retry policy."""

    status_code = 503
    code = "STORE_UNAVAILABLE"


class PermissionDenied(FanConnectError):
    status_code = 403
    code = "PERMISSION_DENIED"


class NotFound(FanConnectError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationError(FanConnectError):
    status_code = 422
    code = "VALIDATION_ERROR"


class Conflict(FanConnectError):
    status_code = 409
    code = "CONFLICT"


# -------------------------------------------------
# Read/write path helpers
# -------------------------------------------------
def read_path(default: Callable[[], Any]) -> Callable[[F], F]:
    """
    Read-path guard for service methods (self.db is the store session).

    - store not configured -> default()
    - OperationalError (timeout / connection lost) -> rollback, log, default()
    """

    def deco(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            if self.db is None:
                return default()
            try:
                return fn(self, *args, **kwargs)
            except OperationalError as e:
                self.db.rollback()
                logger.warning("store read failed in %s, failing closed: %s", fn.__qualname__, e)
                return default()

        return wrapper  # type: ignore[return-value]

    return deco


def write_path(fn: F) -> F:
    """
    Write-path guard: no store -> NotConfigured, OperationalError -> StoreUnavailable.
    Everything else propagates untouched.
    """

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        if self.db is None:
            raise NotConfigured("Entity store is not configured")
        try:
            return fn(self, *args, **kwargs)
        except OperationalError as e:
            self.db.rollback()
            logger.error("store write failed in %s: %s", fn.__qualname__, e)
            raise StoreUnavailable("Entity store unavailable, try again") from e

    return wrapper  # type: ignore[return-value]
