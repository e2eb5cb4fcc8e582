"""Protocol interfaces for dependency injection.

The feed engine, social service, optimistic toggles and session manager
depend on these structural contracts rather than on concrete classes, so
tests can substitute in-memory fakes and alternative transports can be
plugged in without inheritance.

Example:
    >>> from decentra.interfaces import IIdentityProvider
    >>> class NullProvider:
    ...     async def login(self, session_ceiling, on_success, on_error): ...
    ...     async def logout(self): ...
    ...     async def is_authenticated(self): return False
    ...     def get_identity(self): return None
    >>> isinstance(NullProvider(), IIdentityProvider)
    True

References:
    - Python typing.Protocol documentation
      https://docs.python.org/3/library/typing.html#typing.Protocol
"""

from collections.abc import Callable
from datetime import timedelta
from typing import Protocol, runtime_checkable

from decentra.config import PostVisibility
from decentra.models import (
    Comment,
    FeedPost,
    FollowRequest,
    Identity,
    PlatformStats,
    Post,
    Profile,
)
from decentra.result import Result


@runtime_checkable
class IRemoteGateway(Protocol):
    """Remote Access Gateway contract.

    One coroutine per backend operation. Result-returning methods answer
    ``Ok(value)`` or ``Err(message)`` where the message is untrusted display
    text. Option-returning methods answer the value or ``None``.

    Implementations raise only for transport-level faults
    (``TransientRemoteError``, ``RemoteCallError``); expected failures are
    never raised.
    """

    def set_identity(self, identity: Identity | None) -> None:
        """Attach (or detach) the credential used for subsequent calls."""
        ...

    # Posts
    async def create_post(
        self, content: str, visibility: PostVisibility | None = None
    ) -> Result[int, str]: ...

    async def get_post(self, post_id: int) -> Post | None: ...

    async def get_user_posts(
        self, user_id: str, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Post], str]: ...

    async def get_user_feed(
        self, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Post], str]: ...

    async def get_social_feed(
        self, offset: int | None = None, limit: int | None = None
    ) -> Result[list[FeedPost], str]: ...

    # Likes and comments
    async def like_post(self, post_id: int) -> Result[None, str]: ...

    async def unlike_post(self, post_id: int) -> Result[None, str]: ...

    async def is_post_liked(self, post_id: int) -> Result[bool, str]: ...

    async def add_comment(self, post_id: int, content: str) -> Result[Comment, str]: ...

    async def get_post_comments(
        self, post_id: int, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Comment], str]: ...

    # Social graph
    async def follow_user(self, user_id: str) -> Result[None, str]: ...

    async def unfollow_user(self, user_id: str) -> Result[None, str]: ...

    async def is_following(self, follower_id: str, target_id: str) -> Result[bool, str]: ...

    async def get_followers(
        self, user_id: str, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Profile], str]: ...

    async def get_following(
        self, user_id: str, offset: int | None = None, limit: int | None = None
    ) -> Result[list[Profile], str]: ...

    async def get_pending_follow_requests(self) -> Result[list[FollowRequest], str]: ...

    async def approve_follow_request(self, request_id: int) -> Result[None, str]: ...

    async def reject_follow_request(self, request_id: int) -> Result[None, str]: ...

    # Profiles
    async def get_user_profile(self, user_id: str) -> Profile | None: ...

    async def get_my_profile(self) -> Profile | None: ...

    async def create_user_profile(
        self, username: str, bio: str | None = None, avatar: str | None = None
    ) -> Result[Profile, str]: ...

    async def update_user_profile(
        self,
        username: str | None = None,
        bio: str | None = None,
        avatar: str | None = None,
    ) -> Result[Profile, str]: ...

    async def check_username_availability(self, username: str) -> Result[bool, str]: ...

    # Platform
    async def get_platform_stats(self) -> PlatformStats: ...

    async def health_check(self) -> str: ...

    async def close(self) -> None:
        """Close all connections and cleanup resources."""
        ...


@runtime_checkable
class IIdentityProvider(Protocol):
    """Identity provider contract, invoked only by the session manager.

    The login ceremony itself is a black box: ``login`` resolves once the
    provider has called exactly one of ``on_success`` or ``on_error``.
    """

    async def login(
        self,
        session_ceiling: timedelta,
        on_success: Callable[[Identity], None],
        on_error: Callable[[str], None],
    ) -> None:
        """Run the login ceremony, requesting ``session_ceiling`` as max lifetime."""
        ...

    async def logout(self) -> None: ...

    async def is_authenticated(self) -> bool: ...

    def get_identity(self) -> Identity | None: ...


__all__ = ["IRemoteGateway", "IIdentityProvider"]
