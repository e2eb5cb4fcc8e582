"""Error taxonomy and remote-call settling.

Expected failures are reported as ``Err(ServiceError)`` values tagged with
an :class:`ErrorKind`. Transport faults raised by the gateway are caught at
the service boundary by :func:`settle_remote_call` and re-wrapped into the
taxonomy, keeping the original message as auxiliary detail.
"""

import asyncio
from collections.abc import Awaitable
from enum import StrEnum
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict

from decentra.logging import logger, operation_scope
from decentra.metrics import errors_total
from decentra.result import Err, Ok, Result

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Tagged failure kinds surfaced to callers."""

    AUTH_REQUIRED = "AUTH_REQUIRED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CONTENT_EMPTY = "CONTENT_EMPTY"
    CONTENT_TOO_LONG = "CONTENT_TOO_LONG"
    CONTENT_SECURITY_VIOLATION = "CONTENT_SECURITY_VIOLATION"
    INVALID_POST_ID = "INVALID_POST_ID"
    INVALID_USER_ID = "INVALID_USER_ID"
    INVALID_REQUEST_ID = "INVALID_REQUEST_ID"
    INVALID_USERNAME = "INVALID_USERNAME"
    INVALID_BIO = "INVALID_BIO"
    INVALID_AVATAR = "INVALID_AVATAR"
    FEED_FETCH_FAILED = "FEED_FETCH_FAILED"
    SOCIAL_FEED_FETCH_FAILED = "SOCIAL_FEED_FETCH_FAILED"
    POST_CREATION_FAILED = "POST_CREATION_FAILED"
    POST_FETCH_FAILED = "POST_FETCH_FAILED"
    FOLLOW_FAILED = "FOLLOW_FAILED"
    UNFOLLOW_FAILED = "UNFOLLOW_FAILED"
    LIKE_FAILED = "LIKE_FAILED"
    UNLIKE_FAILED = "UNLIKE_FAILED"
    COMMENT_CREATION_FAILED = "COMMENT_CREATION_FAILED"
    COMMENTS_FETCH_FAILED = "COMMENTS_FETCH_FAILED"
    FOLLOW_STATUS_FAILED = "FOLLOW_STATUS_FAILED"
    FOLLOWERS_FETCH_FAILED = "FOLLOWERS_FETCH_FAILED"
    FOLLOWING_FETCH_FAILED = "FOLLOWING_FETCH_FAILED"
    FOLLOW_REQUESTS_FETCH_FAILED = "FOLLOW_REQUESTS_FETCH_FAILED"
    APPROVE_REQUEST_FAILED = "APPROVE_REQUEST_FAILED"
    REJECT_REQUEST_FAILED = "REJECT_REQUEST_FAILED"
    PROFILE_FETCH_FAILED = "PROFILE_FETCH_FAILED"
    PROFILE_CREATION_FAILED = "PROFILE_CREATION_FAILED"
    PROFILE_UPDATE_FAILED = "PROFILE_UPDATE_FAILED"
    USERNAME_CHECK_FAILED = "USERNAME_CHECK_FAILED"
    PLATFORM_STATS_FAILED = "PLATFORM_STATS_FAILED"
    HEALTH_CHECK_FAILED = "HEALTH_CHECK_FAILED"
    SESSION_ERROR = "SESSION_ERROR"
    MUTATION_IN_FLIGHT = "MUTATION_IN_FLIGHT"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Server messages that mean the local view of a toggle was already stale.
DUPLICATE_ACTION_MARKERS = (
    "already liked",
    "not liked",
    "already following",
    "not following",
    "already requested",
)

_RETRYABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.RATE_LIMIT_EXCEEDED})


class ServiceError(BaseModel):
    """Structured failure descriptor.

    Attributes:
        kind: Tagged failure kind
        message: Display text, verbatim from the server when it supplied one
        details: Original low-level message kept for diagnostics
        transient: True when the failure came from the transport layer
    """

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    details: Optional[str] = None
    transient: bool = False

    @property
    def requires_login(self) -> bool:
        """Authentication failures route the user toward login."""
        return self.kind == ErrorKind.AUTH_REQUIRED

    @property
    def retryable(self) -> bool:
        """Whether a retry affordance should be offered."""
        return self.transient or self.kind in _RETRYABLE_KINDS

    @property
    def is_duplicate_action(self) -> bool:
        """Whether the server rejected a toggle that was already in effect."""
        lowered = self.message.lower()
        return any(marker in lowered for marker in DUPLICATE_ACTION_MARKERS)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


def fail(kind: ErrorKind, message: str, details: Optional[str] = None) -> Err[ServiceError]:
    """Shorthand for building an ``Err(ServiceError)``."""
    return Err(ServiceError(kind=kind, message=message, details=details))


# =============================================================================
# Transport Exceptions
# =============================================================================


class RemoteError(Exception):
    """Base class for faults raised below the service boundary."""


class TransientRemoteError(RemoteError):
    """Retryable network/HTTP layer failures.

    Raised for errors that should trigger retry logic:
    - Network timeouts
    - Connection errors
    - HTTP 429 (rate limit)
    - HTTP 5xx (server errors)
    """


class RemoteCallError(RemoteError):
    """Permanent transport or protocol failure (4xx, malformed envelope)."""


# =============================================================================
# Service Boundary
# =============================================================================


async def settle_remote_call(
    call: Awaitable[Any],
    *,
    kind: ErrorKind,
    action: str,
    timeout: float,
    component: str = "service",
) -> Result[Any, ServiceError]:
    """Await a gateway call and fold every outcome into a tagged result.

    Gateway calls answer either a ``Result[T, str]`` (remote ``Ok``/``Err``)
    or a plain value for option-returning methods.

    Args:
        call: Awaitable gateway call
        kind: Failure kind reported for remote and transport failures
        action: Human description used in failure messages ("like post")
        timeout: Ceiling in seconds for the whole call
        component: Metrics label for the calling component

    Returns:
        ``Ok(value)`` or ``Err(ServiceError)``
    """
    try:
        with operation_scope(action):
            outcome = await asyncio.wait_for(call, timeout=timeout)
    except TimeoutError:
        logger.error(f"Remote call timed out after {timeout:.1f}s: {action}")
        errors_total.labels(kind=ErrorKind.TIMEOUT.value, component=component).inc()
        return Err(
            ServiceError(
                kind=ErrorKind.TIMEOUT,
                message=f"Timed out trying to {action}. Please try again.",
                details=f"no response within {timeout:.1f}s",
                transient=True,
            )
        )
    except (RemoteError, httpx.HTTPError) as exc:
        logger.error(f"Failed to {action}: {exc}")
        errors_total.labels(kind=kind.value, component=component).inc()
        return Err(
            ServiceError(
                kind=kind,
                message=f"Failed to {action}: {exc}",
                details=repr(exc),
                transient=isinstance(exc, (TransientRemoteError, httpx.TransportError)),
            )
        )

    if isinstance(outcome, Err):
        message = str(outcome.error) or f"Failed to {action}"
        logger.warning(f"Remote rejected {action}: {message}")
        errors_total.labels(kind=kind.value, component=component).inc()
        return Err(ServiceError(kind=kind, message=message, details=message))

    if isinstance(outcome, Ok):
        return outcome

    return Ok(outcome)


__all__ = [
    "ErrorKind",
    "ServiceError",
    "DUPLICATE_ACTION_MARKERS",
    "fail",
    "RemoteError",
    "TransientRemoteError",
    "RemoteCallError",
    "settle_remote_call",
]
