from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from wrangler.models import RelocationResult

GENERIC_FAILURE = "Something went wrong :("


class WranglerError(Exception):
    """
    Base class for every failure the engine reports to its caller. The message is
    meant to be shown to the user as-is.
    """

    retryable = False


class NotFound(WranglerError):
    pass


class NotRelocatable(WranglerError):
    pass


class ThreadTooLarge(NotRelocatable):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"This thread has {size} messages, which is more than the limit of {limit}."
        )
        self.size = size
        self.limit = limit


class InvalidOrdering(WranglerError):
    retryable = True


class Conflict(WranglerError):
    retryable = True


class PartialFailure(WranglerError):
    retryable = True

    def __init__(self, result: RelocationResult) -> None:
        created = len(result.created)
        total = created + len(result.failed) + len(result.pending)
        super().__init__(
            f"Only {created} of {total} messages were copied before an error occurred;"
            " the original thread was left untouched."
        )
        self.result = result


class StoreError(WranglerError):
    retryable = True


class Forbidden(StoreError):
    retryable = False


class Unsupported(StoreError):
    """The host accepted a request but did not apply all of it."""

    retryable = False


def handle_error(error: BaseException) -> None:
    logger.exception(error)
    for note in getattr(error, "__notes__", []):
        logger.error(note)
    if isinstance(error, PartialFailure):
        logger.error(
            "created {} before failing on {}",
            error.result.created,
            error.result.failed,
        )


def describe_error(error: BaseException) -> str:
    match error:
        case WranglerError() if error.args:
            return str(error)
        case NotFound():
            return "The message or channel no longer exists."
        case NotRelocatable():
            return "System messages cannot be moved."
        case InvalidOrdering():
            return "That action is no longer available; please try again."
        case Conflict():
            return "The thread changed while this action ran; please try again."
        case _:
            handle_error(error)
            return GENERIC_FAILURE
