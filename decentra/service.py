"""Social network service.

Every remote operation the client exposes, each run through the same
sequence before it reaches the gateway:

    rate limit -> input validation -> authentication -> remote call

Validation and rate-limit failures are returned before any network
traffic. Remote failures, transport faults and timeouts are folded into
``Err(ServiceError)`` by :func:`~decentra.errors.settle_remote_call`.

Example:
    >>> service = SocialService(gateway)
    >>> result = await service.like_post(42)
    >>> if not result.ok:
    ...     print(result.error.kind, result.error.message)
"""

from collections.abc import Awaitable, Callable
from typing import Any, Optional

from decentra.config import PostVisibility, settings
from decentra.errors import ErrorKind, ServiceError, settle_remote_call
from decentra.feed import FeedAggregator, ViewerLookup, resolve_viewer
from decentra.guard import (
    RateLimiter,
    validate_content,
    validate_pagination_params,
    validate_post_id,
    validate_request_id,
    validate_user_id,
)
from decentra.interfaces import IRemoteGateway
from decentra.models import (
    Comment,
    FeedPost,
    FollowRequest,
    PlatformStats,
    Post,
    Profile,
)
from decentra.result import Err, Result


def first_failure(*checks: Result[Any, ServiceError]) -> Optional[Err[ServiceError]]:
    """Return the first ``Err`` among already-evaluated checks."""
    for check in checks:
        if isinstance(check, Err):
            return check
    return None


class SocialService:
    """Guarded access to posts, comments, likes, follows and platform data.

    Args:
        gateway: Remote Access Gateway
        rate_limiter: Limiter owned by the caller's session; a private one
            is created when omitted
        viewer: Callable returning the caller's profile (bound to the
            session manager); when omitted the remote service is asked
        timeout: Ceiling for every remote call
        on_activity: Called whenever the user issues a remote operation
            (normally ``SessionManager.record_activity``, postponing idle expiry)
    """

    def __init__(
        self,
        gateway: IRemoteGateway,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        viewer: Optional[ViewerLookup] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        on_activity: Optional[Callable[[], None]] = None,
    ) -> None:
        self._gateway = gateway
        self._on_activity = on_activity
        self._limiter = rate_limiter or RateLimiter()
        self._viewer = viewer
        self._timeout = timeout or settings.remote_call_timeout_seconds
        self.feed = FeedAggregator(
            gateway, viewer=viewer, timeout=self._timeout, batch_size=batch_size
        )

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._limiter

    def _touch(self) -> None:
        if self._on_activity is not None:
            self._on_activity()

    async def _remote(
        self, call: Awaitable[Any], kind: ErrorKind, action: str
    ) -> Result[Any, ServiceError]:
        self._touch()
        return await settle_remote_call(
            call, kind=kind, action=action, timeout=self._timeout, component="service"
        )

    async def _require_auth(self) -> Result[Profile, ServiceError]:
        return await resolve_viewer(self._gateway, self._viewer, self._timeout)

    # =========================================================================
    # Posts
    # =========================================================================

    async def create_post(
        self, content: str, visibility: Optional[PostVisibility] = None
    ) -> Result[int, ServiceError]:
        """Create a post and return its id."""
        failure = first_failure(
            self._limiter.check("createPost"),
            validate_content(content),
        )
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.create_post(content, visibility),
            ErrorKind.POST_CREATION_FAILED,
            "create post",
        )

    async def get_post(self, post_id: int) -> Result[Optional[Post], ServiceError]:
        check = validate_post_id(post_id)
        if not check.ok:
            return check
        return await self._remote(
            self._gateway.get_post(post_id), ErrorKind.POST_FETCH_FAILED, "get post"
        )

    async def get_user_posts(
        self, user_id: str, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[Post], ServiceError]:
        check = validate_user_id(user_id, "getting user posts")
        if not check.ok:
            return check
        page = validate_pagination_params(offset, limit)
        return await self._remote(
            self._gateway.get_user_posts(user_id, page.offset, page.limit),
            ErrorKind.POST_FETCH_FAILED,
            "get user posts",
        )

    async def get_user_feed(
        self, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[FeedPost], ServiceError]:
        self._touch()
        return await self.feed.get_user_feed(offset, limit)

    async def get_social_feed(
        self, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[FeedPost], ServiceError]:
        self._touch()
        return await self.feed.get_social_feed(offset, limit)

    # =========================================================================
    # Engagement
    # =========================================================================

    async def like_post(self, post_id: int) -> Result[None, ServiceError]:
        failure = first_failure(self._limiter.check("likePost"), validate_post_id(post_id))
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.like_post(post_id), ErrorKind.LIKE_FAILED, "like post"
        )

    async def unlike_post(self, post_id: int) -> Result[None, ServiceError]:
        failure = first_failure(self._limiter.check("unlikePost"), validate_post_id(post_id))
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.unlike_post(post_id), ErrorKind.UNLIKE_FAILED, "unlike post"
        )

    async def is_post_liked(self, post_id: int) -> Result[bool, ServiceError]:
        check = validate_post_id(post_id)
        if not check.ok:
            return check
        return await self._remote(
            self._gateway.is_post_liked(post_id),
            ErrorKind.UNKNOWN_ERROR,
            "check like status",
        )

    async def add_comment(self, post_id: int, content: str) -> Result[Comment, ServiceError]:
        failure = first_failure(
            self._limiter.check("addComment"),
            validate_post_id(post_id),
            validate_content(content, label="Comment"),
        )
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.add_comment(post_id, content),
            ErrorKind.COMMENT_CREATION_FAILED,
            "add comment",
        )

    async def get_post_comments(
        self, post_id: int, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[Comment], ServiceError]:
        check = validate_post_id(post_id)
        if not check.ok:
            return check
        page = validate_pagination_params(offset, limit)
        return await self._remote(
            self._gateway.get_post_comments(post_id, page.offset, page.limit),
            ErrorKind.COMMENTS_FETCH_FAILED,
            "get post comments",
        )

    # =========================================================================
    # Social Graph
    # =========================================================================

    async def follow_user(self, user_id: str) -> Result[None, ServiceError]:
        failure = first_failure(
            self._limiter.check("followUser"),
            validate_user_id(user_id, "following user"),
        )
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.follow_user(user_id), ErrorKind.FOLLOW_FAILED, "follow user"
        )

    async def unfollow_user(self, user_id: str) -> Result[None, ServiceError]:
        failure = first_failure(
            self._limiter.check("unfollowUser"),
            validate_user_id(user_id, "unfollowing user"),
        )
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.unfollow_user(user_id), ErrorKind.UNFOLLOW_FAILED, "unfollow user"
        )

    async def is_following(self, follower_id: str, target_id: str) -> Result[bool, ServiceError]:
        failure = first_failure(
            validate_user_id(follower_id, "checking follow status (follower)"),
            validate_user_id(target_id, "checking follow status (target)"),
        )
        if failure is not None:
            return failure
        return await self._remote(
            self._gateway.is_following(follower_id, target_id),
            ErrorKind.FOLLOW_STATUS_FAILED,
            "check follow status",
        )

    async def get_followers(
        self, user_id: str, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[Profile], ServiceError]:
        check = validate_user_id(user_id, "getting followers")
        if not check.ok:
            return check
        page = validate_pagination_params(offset, limit)
        return await self._remote(
            self._gateway.get_followers(user_id, page.offset, page.limit),
            ErrorKind.FOLLOWERS_FETCH_FAILED,
            "get followers",
        )

    async def get_following(
        self, user_id: str, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[Profile], ServiceError]:
        check = validate_user_id(user_id, "getting following")
        if not check.ok:
            return check
        page = validate_pagination_params(offset, limit)
        return await self._remote(
            self._gateway.get_following(user_id, page.offset, page.limit),
            ErrorKind.FOLLOWING_FETCH_FAILED,
            "get following",
        )

    # =========================================================================
    # Follow Requests
    # =========================================================================

    async def get_pending_follow_requests(self) -> Result[list[FollowRequest], ServiceError]:
        auth = await self._require_auth()
        if not auth.ok:
            return auth
        return await self._remote(
            self._gateway.get_pending_follow_requests(),
            ErrorKind.FOLLOW_REQUESTS_FETCH_FAILED,
            "get pending follow requests",
        )

    async def approve_follow_request(self, request_id: int) -> Result[None, ServiceError]:
        failure = first_failure(
            self._limiter.check("approveFollowRequest"),
            validate_request_id(request_id),
        )
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.approve_follow_request(request_id),
            ErrorKind.APPROVE_REQUEST_FAILED,
            "approve follow request",
        )

    async def reject_follow_request(self, request_id: int) -> Result[None, ServiceError]:
        failure = first_failure(
            self._limiter.check("rejectFollowRequest"),
            validate_request_id(request_id),
        )
        if failure is not None:
            return failure

        auth = await self._require_auth()
        if not auth.ok:
            return auth

        return await self._remote(
            self._gateway.reject_follow_request(request_id),
            ErrorKind.REJECT_REQUEST_FAILED,
            "reject follow request",
        )

    # =========================================================================
    # Profiles and Platform
    # =========================================================================

    async def get_user_profile(self, user_id: str) -> Result[Optional[Profile], ServiceError]:
        check = validate_user_id(user_id, "getting a profile")
        if not check.ok:
            return check
        return await self._remote(
            self._gateway.get_user_profile(user_id),
            ErrorKind.PROFILE_FETCH_FAILED,
            "get user profile",
        )

    async def get_platform_stats(self) -> Result[PlatformStats, ServiceError]:
        return await self._remote(
            self._gateway.get_platform_stats(),
            ErrorKind.PLATFORM_STATS_FAILED,
            "get platform stats",
        )

    async def health_check(self) -> Result[str, ServiceError]:
        return await self._remote(
            self._gateway.health_check(), ErrorKind.HEALTH_CHECK_FAILED, "run health check"
        )


__all__ = ["SocialService", "first_failure"]
