"""Full error hierarchy for pagekeep.

Every public error class inherits from PagekeepError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

Error codes are defined as a :class:`str` enum so that they serialise
naturally to JSON and can be matched with simple ``==`` comparisons.

Planning outcomes such as a rejected move are *not* errors: the move planner
returns a :class:`~pagekeep.models.MoveDecision`.  :class:`PagekeepCycleError`
is only raised by convenience wrappers that plan and apply in one call.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the engine can raise."""

    NOT_FOUND = "NOT_FOUND"
    CYCLE_REJECTED = "CYCLE_REJECTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class PagekeepError(Exception):
    """Base exception for all pagekeep errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class PagekeepNotFoundError(PagekeepError):
    """A page or page version does not exist (or is not visible to the owner).

    Context keys: ``resource_type``, ``resource_id``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=message,
            context=context,
            cause=cause,
        )


class PagekeepCycleError(PagekeepError):
    """A move would make a page its own ancestor, or drops a page on itself.

    Context keys: ``page_id``, ``target_id``, ``reason``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CYCLE_REJECTED,
            message=message,
            context=context,
            cause=cause,
        )


class PagekeepValidationError(PagekeepError):
    """Input was rejected: empty title, missing required field, bad argument.

    Context keys: ``field``, ``value``, ``constraint``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class PagekeepConcurrencyError(PagekeepError):
    """A conditional write found a different version than the one read.

    The caller should re-read the page and retry.

    Context keys: ``page_id``, ``expected_version``, ``actual_version``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CONCURRENCY_CONFLICT,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Store / transport errors
# ---------------------------------------------------------------------------

class PagekeepStoreUnavailableError(PagekeepError):
    """The row store could not be reached or failed at the infrastructure level.

    This is the only error the engine treats as fatal; the caller decides
    whether to back off and retry.

    Context keys: ``url``, ``attempt``, and ``deleted`` for partial prunes.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        code: str = ErrorCode.STORE_UNAVAILABLE,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class PagekeepRetryExhaustedError(PagekeepStoreUnavailableError):
    """All transport retry attempts have been exhausted.

    Context keys: ``attempts``, ``last_status_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            context=context,
            cause=cause,
            code=ErrorCode.RETRY_EXHAUSTED,
        )


class PagekeepAuthError(PagekeepError):
    """The store rejected the API key (HTTP 401).

    Context keys: ``status_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.AUTH_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class PagekeepPermissionError(PagekeepError):
    """The store refused the operation for this identity (HTTP 403).

    Context keys: ``status_code``, ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PERMISSION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
