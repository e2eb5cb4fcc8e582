"""Validation and rate-limit guard.

Pure checks that reject malformed input before any remote call is made,
plus a per-operation rate limiter. Every check answers ``Ok(None)`` or an
``Err(ServiceError)``; nothing here raises for bad input.

The content screening is an early deterrent only. The remote service runs
its own sanitization and remains authoritative.

Example:
    >>> from decentra.guard import RateLimiter, validate_pagination_params
    >>> validate_pagination_params(-5, 500)
    Pagination(offset=0, limit=50)
    >>> limiter = RateLimiter(window_seconds=1.0)
    >>> limiter.check("likePost").ok
    True
    >>> limiter.check("likePost").ok
    False
"""

import re
import time
from collections.abc import Callable
from typing import NamedTuple, Optional

from decentra.config import settings
from decentra.errors import ErrorKind, ServiceError, fail
from decentra.logging import logger
from decentra.result import Ok, Result

MAX_CONTENT_LENGTH = 10_000
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50
MAX_BIO_LENGTH = 500
MAX_AVATAR_LENGTH = 200

# Script tags, script-protocol URLs and inline event handler assignment
DANGEROUS_CONTENT_PATTERNS = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
)

# Substrings the remote service refuses in profile text fields
MALICIOUS_PROFILE_PATTERNS = (
    "<script",
    "</script>",
    "javascript:",
    "onclick=",
    "onerror=",
    "onload=",
    "eval(",
    "alert(",
    "document.cookie",
    "window.location",
    "iframe",
    "object",
    "embed",
    "form",
    "input",
    "union select",
    "drop table",
    "delete from",
    "insert into",
    "update set",
    "'; --",
    '"; --',
)

RESERVED_USERNAMES = frozenset(
    {
        "admin",
        "administrator",
        "mod",
        "moderator",
        "system",
        "root",
        "api",
        "www",
        "mail",
        "email",
        "support",
        "help",
        "info",
        "news",
        "blog",
        "decentra",
        "backend",
        "frontend",
        "canister",
        "icp",
        "dfinity",
        "anonymous",
        "null",
        "undefined",
        "true",
        "false",
        "test",
        "demo",
    }
)

SAFE_AVATAR_DOMAINS = (
    "imgur.com",
    "i.imgur.com",
    "github.com",
    "githubusercontent.com",
    "gravatar.com",
    "avatar.com",
    "cloudinary.com",
    "cloudflare.com",
    "unsplash.com",
    "pexels.com",
)

_USERNAME_SEPARATORS = ("_", "-")


# =============================================================================
# Content and Identifier Checks
# =============================================================================


def validate_content(
    text: str | None,
    *,
    max_length: int = MAX_CONTENT_LENGTH,
    label: str = "Post content",
) -> Result[None, ServiceError]:
    """Reject empty, oversized or script-bearing text.

    Args:
        text: Post or comment body
        max_length: Character ceiling (inclusive)
        label: Subject used in failure messages

    Returns:
        ``Ok(None)`` or ``Err`` tagged CONTENT_EMPTY, CONTENT_TOO_LONG or
        CONTENT_SECURITY_VIOLATION
    """
    if not text or not text.strip():
        return fail(ErrorKind.CONTENT_EMPTY, f"{label} cannot be empty")

    if len(text) > max_length:
        return fail(
            ErrorKind.CONTENT_TOO_LONG,
            f"{label} cannot exceed {max_length} characters. Current: {len(text)}",
        )

    for pattern in DANGEROUS_CONTENT_PATTERNS:
        if pattern.search(text):
            return fail(
                ErrorKind.CONTENT_SECURITY_VIOLATION,
                "Content contains potentially dangerous elements",
                details=f"matched {pattern.pattern!r}",
            )

    return Ok(None)


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_post_id(post_id: object) -> Result[None, ServiceError]:
    if not _is_positive_int(post_id):
        return fail(ErrorKind.INVALID_POST_ID, "Post ID must be a positive number")
    return Ok(None)


def validate_request_id(request_id: object) -> Result[None, ServiceError]:
    if not _is_positive_int(request_id):
        return fail(
            ErrorKind.INVALID_REQUEST_ID, "Follow request ID must be a positive number"
        )
    return Ok(None)


def validate_user_id(user_id: object, context: str = "this action") -> Result[None, ServiceError]:
    if not isinstance(user_id, str) or not user_id.strip():
        return fail(ErrorKind.INVALID_USER_ID, f"User ID is required for {context}")
    return Ok(None)


# =============================================================================
# Pagination
# =============================================================================


class Pagination(NamedTuple):
    """Bounded pagination window."""

    offset: int
    limit: int


def validate_pagination_params(
    offset: Optional[int] = None,
    limit: Optional[int] = None,
    *,
    default_limit: Optional[int] = None,
    max_limit: Optional[int] = None,
    max_offset: Optional[int] = None,
) -> Pagination:
    """Clamp caller-supplied pagination into safe bounds.

    Offset is clamped into ``[0, max_offset]`` and limit into
    ``[1, max_limit]``; a missing limit becomes ``default_limit``. Bounds
    default to the configured settings.
    """
    default_limit = default_limit or settings.default_page_limit
    max_limit = max_limit or settings.max_page_limit
    max_offset = settings.max_offset if max_offset is None else max_offset

    valid_offset = max(0, min(int(offset) if offset is not None else 0, max_offset))
    valid_limit = max(1, min(int(limit) if limit is not None else default_limit, max_limit))
    return Pagination(offset=valid_offset, limit=valid_limit)


# =============================================================================
# Rate Limiting
# =============================================================================


class RateLimiter:
    """Per-operation-name throttle.

    Rejects a call when less than ``window_seconds`` has elapsed since the
    last accepted call with the same operation name. Buckets are keyed by
    operation, not by target, so likes on two different posts share one
    bucket. Each session or service owns its own limiter.

    Args:
        window_seconds: Minimum spacing between accepted calls
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = (
            settings.rate_limit_window_seconds if window_seconds is None else window_seconds
        )
        self._clock = clock
        self._last_call: dict[str, float] = {}

    def check(self, operation: str) -> Result[None, ServiceError]:
        now = self._clock()
        last = self._last_call.get(operation)
        if last is not None and now - last < self.window_seconds:
            logger.debug(f"Rate limit hit for {operation}")
            return fail(
                ErrorKind.RATE_LIMIT_EXCEEDED,
                f"Rate limit exceeded for {operation}. Please wait before trying again.",
            )
        self._last_call[operation] = now
        return Ok(None)

    def reset(self, operation: Optional[str] = None) -> None:
        """Forget one operation's last call, or all of them."""
        if operation is None:
            self._last_call.clear()
        else:
            self._last_call.pop(operation, None)


# =============================================================================
# Profile Fields
# =============================================================================


def contains_malicious_patterns(text: str) -> bool:
    lowered = text.lower()
    return any(pattern in lowered for pattern in MALICIOUS_PROFILE_PATTERNS)


def validate_username(username: str) -> Result[None, ServiceError]:
    """Check length, charset, separator placement and reserved words."""
    if len(username) < MIN_USERNAME_LENGTH:
        return fail(
            ErrorKind.INVALID_USERNAME,
            f"Username must be at least {MIN_USERNAME_LENGTH} characters",
        )
    if len(username) > MAX_USERNAME_LENGTH:
        return fail(
            ErrorKind.INVALID_USERNAME,
            f"Username must be at most {MAX_USERNAME_LENGTH} characters",
        )
    if not all(c.isalnum() or c in _USERNAME_SEPARATORS for c in username):
        return fail(
            ErrorKind.INVALID_USERNAME,
            "Username can only contain letters, numbers, underscores, and hyphens",
        )
    if username.startswith(_USERNAME_SEPARATORS) or username.endswith(_USERNAME_SEPARATORS):
        return fail(
            ErrorKind.INVALID_USERNAME,
            "Username cannot start or end with underscore or hyphen",
        )
    if any(
        a in _USERNAME_SEPARATORS and b in _USERNAME_SEPARATORS
        for a, b in zip(username, username[1:])
    ):
        return fail(
            ErrorKind.INVALID_USERNAME,
            "Username cannot have consecutive special characters",
        )
    if username.lower() in RESERVED_USERNAMES:
        return fail(ErrorKind.INVALID_USERNAME, "Username is reserved and cannot be used")
    return Ok(None)


def validate_bio(bio: str) -> Result[None, ServiceError]:
    if len(bio) > MAX_BIO_LENGTH:
        return fail(ErrorKind.INVALID_BIO, f"Bio must be at most {MAX_BIO_LENGTH} characters")
    if contains_malicious_patterns(bio):
        return fail(ErrorKind.INVALID_BIO, "Bio contains potentially harmful content")
    return Ok(None)


def _is_valid_avatar_url(url: str) -> bool:
    return (
        url.startswith("https://")
        and len(url) > 10
        and "." in url
        and not any(ch in url for ch in (" ", "\n", "\r"))
    )


def validate_avatar(avatar: str) -> Result[None, ServiceError]:
    """Avatars are an emoji/short string or an HTTPS URL on an allow-listed domain."""
    if len(avatar) > MAX_AVATAR_LENGTH:
        return fail(
            ErrorKind.INVALID_AVATAR,
            f"Avatar must be at most {MAX_AVATAR_LENGTH} characters",
        )
    if avatar.startswith(("http://", "https://")):
        if not _is_valid_avatar_url(avatar):
            return fail(ErrorKind.INVALID_AVATAR, "Invalid avatar URL format")
        if not any(domain in avatar for domain in SAFE_AVATAR_DOMAINS):
            return fail(ErrorKind.INVALID_AVATAR, "Avatar URL must be from a trusted domain")
    if contains_malicious_patterns(avatar):
        return fail(ErrorKind.INVALID_AVATAR, "Avatar contains potentially harmful content")
    return Ok(None)


def validate_profile_fields(
    username: Optional[str] = None,
    bio: Optional[str] = None,
    avatar: Optional[str] = None,
) -> Result[None, ServiceError]:
    """Validate whichever profile fields are supplied, first failure wins."""
    checks = (
        (username, validate_username),
        (bio, validate_bio),
        (avatar, validate_avatar),
    )
    for value, check in checks:
        if value is None:
            continue
        outcome = check(value)
        if not outcome.ok:
            return outcome
    return Ok(None)


__all__ = [
    "MAX_CONTENT_LENGTH",
    "RESERVED_USERNAMES",
    "SAFE_AVATAR_DOMAINS",
    "Pagination",
    "RateLimiter",
    "validate_content",
    "validate_post_id",
    "validate_request_id",
    "validate_user_id",
    "validate_pagination_params",
    "contains_malicious_patterns",
    "validate_username",
    "validate_bio",
    "validate_avatar",
    "validate_profile_fields",
]
