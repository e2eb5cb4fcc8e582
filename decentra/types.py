"""Type definitions for deCentra wire payloads.

This module provides TypedDict definitions for the JSON bodies exchanged
with the remote service, giving IDE autocomplete and type checking for
payloads before they are validated into the models in ``decentra.models``.

Reference:
    - PEP 589 TypedDict: https://peps.python.org/pep-0589/

Example:
    >>> from decentra.types import PostData
    >>> post: PostData = {
    ...     "id": 42,
    ...     "author_id": "2vxsx-fae",
    ...     "content": "hello",
    ...     "visibility": "Public",
    ...     "like_count": 0,
    ...     "comment_count": 0,
    ...     "created_at": 1_700_000_000_000_000_000,
    ... }
"""

from typing import Any, NotRequired, Required, TypedDict


# =============================================================================
# Core Entity Types
# =============================================================================


class PrivacySettingsData(TypedDict, total=False):
    """Privacy settings as serialized by the remote service."""

    profile_visibility: str
    message_privacy: str
    show_social_graph: bool
    searchable: bool


class ProfileData(TypedDict, total=False):
    """User profile payload.

    Attributes:
        id: Required principal of the profile owner
        username: Required public handle
        bio: Optional biography
        avatar: Optional emoji or HTTPS URL
        created_at: Nanoseconds since epoch
    """

    id: Required[str]
    username: Required[str]
    bio: NotRequired[str]
    avatar: NotRequired[str]
    follower_count: NotRequired[int]
    following_count: NotRequired[int]
    post_count: NotRequired[int]
    created_at: NotRequired[int]
    updated_at: NotRequired[int]
    privacy_settings: NotRequired[PrivacySettingsData]
    verification_status: NotRequired[str | dict[str, None]]


class PostData(TypedDict, total=False):
    """Post payload as returned by ``get_user_feed`` and ``get_post``."""

    id: Required[int]
    author_id: Required[str]
    content: Required[str]
    visibility: NotRequired[str | dict[str, None]]
    like_count: NotRequired[int]
    comment_count: NotRequired[int]
    created_at: NotRequired[int]
    updated_at: NotRequired[int]


class FeedPostData(TypedDict):
    """Already-joined post returned by ``get_social_feed``."""

    post: PostData
    author: ProfileData
    is_liked: NotRequired[bool]


class CommentData(TypedDict, total=False):
    """Comment payload."""

    id: Required[int]
    post_id: Required[int]
    author_id: Required[str]
    content: Required[str]
    created_at: NotRequired[int]
    updated_at: NotRequired[int]


class FollowRequestData(TypedDict, total=False):
    """Follow request payload."""

    id: Required[int]
    requester_id: Required[str]
    target_id: Required[str]
    status: NotRequired[str | dict[str, None]]
    created_at: NotRequired[int]


class PlatformStatsData(TypedDict):
    """Platform-wide counters."""

    total_users: int
    total_posts: int
    total_likes: int
    total_comments: int


# =============================================================================
# Envelope Types
# =============================================================================


class OkEnvelope(TypedDict):
    """Successful remote response: ``{"Ok": value}``."""

    Ok: Any


class ErrEnvelope(TypedDict):
    """Rejected remote response: ``{"Err": "message"}``."""

    Err: str


class RequestBody(TypedDict):
    """Request body sent to ``/api/{canister}/{method}``."""

    args: dict[str, Any]


class RateLimitStatus(TypedDict):
    """Rate limit header values captured from the last response."""

    limit: str | None
    remaining: str | None
    reset: str | None


__all__ = [
    "PrivacySettingsData",
    "ProfileData",
    "PostData",
    "FeedPostData",
    "CommentData",
    "FollowRequestData",
    "PlatformStatsData",
    "OkEnvelope",
    "ErrEnvelope",
    "RequestBody",
    "RateLimitStatus",
]
