import functools
import logging
from typing import Any, Awaitable, Callable, Dict, TypeVar

from pymongo.errors import DuplicateKeyError, PyMongoError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatError(Exception):
    """Base class for failures surfaced to callers as tagged results."""

    code = "error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.code, "message": self.message}


class ValidationError(ChatError):

    code = "validation_error"
    status_code = 400


class NotFoundError(ChatError):

    code = "not_found"
    status_code = 404


class TransientStoreError(ChatError):

    code = "store_unavailable"
    status_code = 503


class AuthenticationError(ChatError):

    code = "unauthorized"
    status_code = 401


class ConflictError(ChatError):

    code = "conflict"
    status_code = 409


def translate_store_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Turn driver failures raised by a repository coroutine into TransientStoreError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except DuplicateKeyError:
            # constraint violation, not an outage; the caller maps it
            raise
        except PyMongoError as exc:
            logger.error("store operation %s failed: %s", func.__qualname__, exc)
            raise TransientStoreError("Message store is temporarily unavailable") from exc

    return wrapper
