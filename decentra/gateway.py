"""Remote Access Gateway for the deCentra backend.

This module provides an async HTTP/2 client with:
- One coroutine per backend operation
- Tagged ``Ok``/``Err`` results for expected failures
- Connection pooling and HTTP/2 multiplexing
- Retry logic with exponential backoff for transient faults
- Rate limit header tracking
- Prometheus metrics per remote method

Wire format: every operation is ``POST {rpc_base_url}/{method}`` with body
``{"args": {...}}``. A 200 response carries ``{"Ok": value}`` or
``{"Err": "message"}``; option-returning methods answer ``{"Ok": null}``
when the entity does not exist.

Example:
    >>> from decentra.gateway import AsyncRemoteGateway
    >>>
    >>> async with AsyncRemoteGateway() as gateway:
    ...     result = await gateway.get_social_feed(offset=0, limit=10)
    ...     if result.ok:
    ...         print(f"Fetched {len(result.value)} posts")
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from decentra.config import PostVisibility, settings
from decentra.errors import RemoteCallError, TransientRemoteError
from decentra.logging import logger
from decentra.metrics import remote_call_duration_seconds, remote_calls_total
from decentra.models import (
    Comment,
    FeedPost,
    FollowRequest,
    Identity,
    PlatformStats,
    Post,
    Profile,
)
from decentra.result import Err, Ok, Result
from decentra.types import RateLimitStatus

T = TypeVar("T")


def _unwrap_option(value: Any) -> Any:
    """Accept both ``null`` and Candid-style ``[]``/``[v]`` optionals."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _unit(_: Any) -> None:
    return None


# =============================================================================
# Async Remote Gateway
# =============================================================================


class AsyncRemoteGateway:
    """Async HTTP/2 client for the deCentra backend RPC surface.

    Features:
    - HTTP/2 multiplexing for concurrent batch lookups
    - Connection pooling to reuse TCP connections
    - Retry logic with exponential backoff for 429/5xx and network faults
    - Rate limiting awareness with adaptive delays
    - Per-call bearer credential taken from the attached identity

    Args:
        base_url: RPC base URL (defaults to settings.rpc_base_url)
        identity: Identity whose delegation is attached to calls
        max_concurrency: Maximum concurrent requests
        max_attempts: Attempts for transient failures
        backoff: Exponential backoff multiplier in seconds
        pool_limits: Custom httpx connection pool limits
        timeout: Custom httpx timeout configuration

    Example:
        >>> async with AsyncRemoteGateway(identity=identity) as gateway:
        ...     profile = await gateway.get_my_profile()
    """

    def __init__(
        self,
        base_url: str | None = None,
        identity: Identity | None = None,
        max_concurrency: int | None = None,
        max_attempts: int | None = None,
        backoff: float | None = None,
        pool_limits: httpx.Limits | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        self._base_url = (base_url or settings.rpc_base_url).rstrip("/")
        self._identity = identity
        self._max_concurrency = max_concurrency or settings.max_concurrency
        self._max_attempts = max_attempts or settings.retry_attempts
        self._backoff = settings.retry_backoff_seconds if backoff is None else backoff
        self._sem = asyncio.Semaphore(self._max_concurrency)

        # Rate limit tracking
        self._rate_limit_limit: str | None = None
        self._rate_limit_remaining: str | None = None
        self._rate_limit_reset: str | None = None

        self._limits = pool_limits or httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20,
            keepalive_expiry=30.0,
        )

        # Per-request ceiling; the service boundary adds its own overall timeout
        self._timeout = timeout or httpx.Timeout(
            timeout=15.0,
            connect=5.0,
            read=10.0,
            write=5.0,
            pool=5.0,
        )

        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=self._limits,
                timeout=self._timeout,
                http2=True,
                follow_redirects=True,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def __aenter__(self) -> "AsyncRemoteGateway":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close all connections and cleanup resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def set_identity(self, identity: Identity | None) -> None:
        """Attach (or detach with ``None``) the credential used for calls."""
        self._identity = identity

    @property
    def identity(self) -> Identity | None:
        return self._identity

    def _auth_headers(self) -> dict[str, str]:
        if self._identity is None:
            return {}
        return {"Authorization": f"Bearer {self._identity.delegation.get_secret_value()}"}

    # -------------------------------------------------------------------------
    # Rate limits
    # -------------------------------------------------------------------------

    @property
    def rate_limit_remaining(self) -> int | None:
        """Remaining request allowance reported by the last response."""
        if self._rate_limit_remaining:
            try:
                return int(self._rate_limit_remaining)
            except (ValueError, TypeError):
                return None
        return None

    def get_rate_limit_status(self) -> RateLimitStatus:
        """Rate limit headers captured from the last response."""
        return {
            "limit": self._rate_limit_limit,
            "remaining": self._rate_limit_remaining,
            "reset": self._rate_limit_reset,
        }

    def _adaptive_delay(self) -> float:
        """Back off briefly when the server reports a nearly exhausted allowance."""
        remaining = self.rate_limit_remaining
        if remaining is None:
            return 0.0
        if remaining < 5:
            return 2.0
        if remaining < 20:
            return 0.5
        return 0.0

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _do_http_post(self, method: str, args: dict[str, Any]) -> dict[str, Any]:
        """Perform raw HTTP POST with error handling.

        Returns:
            Parsed response envelope (``{"Ok": ...}`` or ``{"Err": ...}``)

        Raises:
            TransientRemoteError: For retryable failures
            RemoteCallError: For permanent HTTP or protocol failures
        """
        client = await self._ensure_client()

        try:
            resp = await client.post(
                f"{self._base_url}/{method}",
                json={"args": args},
                headers=self._auth_headers(),
            )
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise TransientRemoteError(f"Network/timeout error: {exc}") from exc

        self._rate_limit_limit = resp.headers.get("X-RateLimit-Limit")
        self._rate_limit_remaining = resp.headers.get("X-RateLimit-Remaining")
        self._rate_limit_reset = resp.headers.get("X-RateLimit-Reset")

        remaining = self.rate_limit_remaining
        if remaining is not None and remaining < 10:
            logger.warning(
                f"Rate limit low: {remaining}/{self._rate_limit_limit or '?'} remaining "
                f"(resets at {self._rate_limit_reset or 'unknown'})"
            )

        if resp.status_code == 429 or 500 <= resp.status_code < 600:
            reset_info = (
                f" (resets at {self._rate_limit_reset})" if resp.status_code == 429 else ""
            )
            raise TransientRemoteError(f"HTTP {resp.status_code}{reset_info}")

        if resp.status_code != 200:
            logger.error(f"Non-retryable HTTP {resp.status_code}: {resp.text[:200]}")
            raise RemoteCallError(f"HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise TransientRemoteError(f"Invalid JSON: {exc}") from exc

        if not isinstance(body, dict) or not ({"Ok", "Err"} & body.keys()):
            raise RemoteCallError(f"Malformed response envelope from {method}")

        return body

    async def _post_with_retry(self, method: str, args: dict[str, Any]) -> dict[str, Any]:
        """POST with semaphore and retry logic."""
        logging_logger = logging.getLogger(__name__)

        @retry(
            reraise=True,
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff, max=30)
            + wait_random(0, self._backoff),
            retry=retry_if_exception_type(TransientRemoteError),
            before_sleep=before_sleep_log(logging_logger, logging.WARNING),
        )
        async def _runner() -> dict[str, Any]:
            async with self._sem:
                delay = self._adaptive_delay()
                if delay:
                    await asyncio.sleep(delay)
                return await self._do_http_post(method, args)

        return await _runner()

    async def _call(self, method: str, args: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue ``method`` and record latency and outcome metrics."""
        start_time = time.perf_counter()
        try:
            body = await self._post_with_retry(method, args or {})
        except Exception:
            remote_calls_total.labels(method=method, status="error").inc()
            raise
        finally:
            remote_call_duration_seconds.labels(method=method).observe(
                time.perf_counter() - start_time
            )

        status = "err" if "Err" in body else "ok"
        remote_calls_total.labels(method=method, status=status).inc()
        logger.debug(f"Remote call {method} -> {status}")
        return body

    async def _result(
        self,
        method: str,
        args: dict[str, Any] | None,
        parse: Callable[[Any], T],
    ) -> Result[T, str]:
        body = await self._call(method, args)
        if "Err" in body:
            return Err(str(body["Err"]))
        return Ok(parse(body["Ok"]))

    async def _option(
        self,
        method: str,
        args: dict[str, Any] | None,
        parse: Callable[[Any], T],
    ) -> T | None:
        body = await self._call(method, args)
        if "Err" in body:
            raise RemoteCallError(str(body["Err"]))
        value = _unwrap_option(body["Ok"])
        return None if value is None else parse(value)

    @staticmethod
    def _page(offset: int | None, limit: int | None) -> dict[str, Any]:
        return {"offset": offset, "limit": limit}

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    async def create_post(
        self, content: str, visibility: PostVisibility | None = None
    ) -> Result[int, str]:
        args = {
            "content": content,
            "visibility": visibility.value if visibility else None,
        }
        return await self._result("create_post", args, int)

    async def get_post(self, post_id: int) -> Post | None:
        return await self._option("get_post", {"post_id": post_id}, Post.model_validate)

    async def get_user_posts(
        self, user_id: str, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Post], str]:
        args = {"user_id": user_id, **self._page(offset, limit)}
        return await self._result(
            "get_user_posts", args, lambda v: [Post.model_validate(p) for p in v]
        )

    async def get_user_feed(
        self, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Post], str]:
        return await self._result(
            "get_user_feed",
            self._page(offset, limit),
            lambda v: [Post.model_validate(p) for p in v],
        )

    async def get_social_feed(
        self, offset: int | None = None, limit: int | None = None
    ) -> Result[list[FeedPost], str]:
        return await self._result(
            "get_social_feed",
            self._page(offset, limit),
            lambda v: [FeedPost.model_validate(p) for p in v],
        )

    # -------------------------------------------------------------------------
    # Likes and comments
    # -------------------------------------------------------------------------

    async def like_post(self, post_id: int) -> Result[None, str]:
        return await self._result("like_post", {"post_id": post_id}, _unit)

    async def unlike_post(self, post_id: int) -> Result[None, str]:
        return await self._result("unlike_post", {"post_id": post_id}, _unit)

    async def is_post_liked(self, post_id: int) -> Result[bool, str]:
        return await self._result("is_post_liked", {"post_id": post_id}, bool)

    async def add_comment(self, post_id: int, content: str) -> Result[Comment, str]:
        return await self._result(
            "add_comment",
            {"post_id": post_id, "content": content},
            Comment.model_validate,
        )

    async def get_post_comments(
        self, post_id: int, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Comment], str]:
        args = {"post_id": post_id, **self._page(offset, limit)}
        return await self._result(
            "get_post_comments", args, lambda v: [Comment.model_validate(c) for c in v]
        )

    # -------------------------------------------------------------------------
    # Social graph
    # -------------------------------------------------------------------------

    async def follow_user(self, user_id: str) -> Result[None, str]:
        return await self._result("follow_user", {"user_id": user_id}, _unit)

    async def unfollow_user(self, user_id: str) -> Result[None, str]:
        return await self._result("unfollow_user", {"user_id": user_id}, _unit)

    async def is_following(self, follower_id: str, target_id: str) -> Result[bool, str]:
        return await self._result(
            "is_following", {"follower_id": follower_id, "target_id": target_id}, bool
        )

    async def get_followers(
        self, user_id: str, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Profile], str]:
        args = {"user_id": user_id, **self._page(offset, limit)}
        return await self._result(
            "get_followers", args, lambda v: [Profile.model_validate(p) for p in v]
        )

    async def get_following(
        self, user_id: str, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Profile], str]:
        args = {"user_id": user_id, **self._page(offset, limit)}
        return await self._result(
            "get_following", args, lambda v: [Profile.model_validate(p) for p in v]
        )

    async def get_pending_follow_requests(self) -> Result[list[FollowRequest], str]:
        return await self._result(
            "get_pending_follow_requests",
            None,
            lambda v: [FollowRequest.model_validate(r) for r in v],
        )

    async def approve_follow_request(self, request_id: int) -> Result[None, str]:
        return await self._result(
            "approve_follow_request", {"request_id": request_id}, _unit
        )

    async def reject_follow_request(self, request_id: int) -> Result[None, str]:
        return await self._result(
            "reject_follow_request", {"request_id": request_id}, _unit
        )

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def get_user_profile(self, user_id: str) -> Profile | None:
        return await self._option(
            "get_user_profile", {"user_id": user_id}, Profile.model_validate
        )

    async def get_my_profile(self) -> Profile | None:
        return await self._option("get_my_profile", None, Profile.model_validate)

    async def create_user_profile(
        self, username: str, bio: str | None = None, avatar: str | None = None
    ) -> Result[Profile, str]:
        args = {"username": username, "bio": bio, "avatar": avatar}
        return await self._result("create_user_profile", args, Profile.model_validate)

    async def update_user_profile(
        self,
        username: str | None = None,
        bio: str | None = None,
        avatar: str | None = None,
    ) -> Result[Profile, str]:
        args = {"username": username, "bio": bio, "avatar": avatar}
        return await self._result("update_user_profile", args, Profile.model_validate)

    async def check_username_availability(self, username: str) -> Result[bool, str]:
        return await self._result(
            "check_username_availability", {"username": username}, bool
        )

    # -------------------------------------------------------------------------
    # Platform
    # -------------------------------------------------------------------------

    async def get_platform_stats(self) -> PlatformStats:
        stats = await self._option("get_platform_stats", None, PlatformStats.model_validate)
        return stats or PlatformStats()

    async def health_check(self) -> str:
        status = await self._option("health_check", None, str)
        return status or "unknown"


# =============================================================================
# Export Public API
# =============================================================================

__all__ = ["AsyncRemoteGateway"]
