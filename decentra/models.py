"""Data models for the deCentra client.

Pydantic models for the shapes returned by the remote service, the
client-synthesized feed view model, and the session snapshot held by the
session manager.

Models are organized into three sections:
1. Remote entities (profiles, posts, comments, follow requests)
2. View models built client-side (FeedPost)
3. Identity and session state
"""

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from decentra.config import (
    FollowRequestStatus,
    MessagePrivacy,
    PostVisibility,
    PrivacyMode,
    ProfileVisibility,
    VerificationStatus,
)
from decentra.errors import ServiceError
from decentra.utils import timestamp_to_datetime


def _coerce_variant(value: Any) -> Any:
    """Accept Candid-style variants (``{"Public": null}``) as plain tags."""
    if isinstance(value, dict) and len(value) == 1:
        return next(iter(value))
    return value


# =============================================================================
# Section 1: Remote Entities
# =============================================================================


class PrivacySettings(BaseModel):
    """Privacy and visibility settings attached to a profile."""

    model_config = ConfigDict(extra="ignore")

    profile_visibility: ProfileVisibility = ProfileVisibility.PUBLIC
    message_privacy: MessagePrivacy = MessagePrivacy.FOLLOWERS_ONLY
    show_social_graph: bool = True
    searchable: bool = True

    @field_validator("profile_visibility", "message_privacy", mode="before")
    @classmethod
    def _coerce_variants(cls, v: Any) -> Any:
        return _coerce_variant(v)


class Profile(BaseModel):
    """User profile as owned by the remote service.

    The client only ever holds a read-through copy of this record.

    Attributes:
        id: Identity handle (principal) of the profile owner
        username: Public handle (3-50 characters)
        bio: Free-form biography (max 500 characters)
        avatar: Emoji or HTTPS URL (max 200 characters)
        follower_count: Number of followers
        following_count: Number of followed users
        post_count: Number of posts authored
        created_at: Creation time in nanoseconds since epoch
        updated_at: Last update time in nanoseconds since epoch
        privacy_settings: Visibility settings
        verification_status: Verification badge
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    username: str
    bio: str = ""
    avatar: str = ""
    follower_count: int = 0
    following_count: int = 0
    post_count: int = 0
    created_at: int = 0
    updated_at: int = 0
    privacy_settings: PrivacySettings = Field(default_factory=PrivacySettings)
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED

    @field_validator("verification_status", mode="before")
    @classmethod
    def _coerce_verification(cls, v: Any) -> Any:
        return _coerce_variant(v)

    @property
    def is_verified(self) -> bool:
        """Verified, organization and journalist accounts carry a badge."""
        return self.verification_status in (
            VerificationStatus.VERIFIED,
            VerificationStatus.ORGANIZATION,
            VerificationStatus.JOURNALIST,
        )

    @property
    def is_public(self) -> bool:
        return self.privacy_settings.profile_visibility == ProfileVisibility.PUBLIC

    @property
    def created_at_datetime(self) -> datetime:
        return timestamp_to_datetime(self.created_at)


class Post(BaseModel):
    """Post record. Immutable apart from server-side counters.

    Attributes:
        id: Post identifier (positive integer)
        author_id: Identity handle of the author
        content: Post body (max 10,000 characters)
        visibility: Who can see the post
        like_count: Number of likes
        comment_count: Number of comments
        created_at: Creation time in nanoseconds since epoch
        updated_at: Last update time in nanoseconds since epoch
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    author_id: str
    content: str
    visibility: PostVisibility = PostVisibility.PUBLIC
    like_count: int = 0
    comment_count: int = 0
    created_at: int = 0
    updated_at: int = 0

    @field_validator("visibility", mode="before")
    @classmethod
    def _coerce_visibility(cls, v: Any) -> Any:
        return _coerce_variant(v)

    @property
    def created_at_datetime(self) -> datetime:
        return timestamp_to_datetime(self.created_at)


class Comment(BaseModel):
    """Comment on a post. Append-only from the client's perspective."""

    model_config = ConfigDict(extra="ignore")

    id: int
    post_id: int
    author_id: str
    content: str
    created_at: int = 0
    updated_at: int = 0

    @property
    def created_at_datetime(self) -> datetime:
        return timestamp_to_datetime(self.created_at)


class FollowRequest(BaseModel):
    """Pending, approved or rejected request to follow a non-public profile."""

    model_config = ConfigDict(extra="ignore")

    id: int
    requester_id: str
    target_id: str
    status: FollowRequestStatus = FollowRequestStatus.PENDING
    created_at: int = 0

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v: Any) -> Any:
        return _coerce_variant(v)


class PlatformStats(BaseModel):
    """Platform-wide counters."""

    model_config = ConfigDict(extra="ignore")

    total_users: int = 0
    total_posts: int = 0
    total_likes: int = 0
    total_comments: int = 0


# =============================================================================
# Section 2: View Models
# =============================================================================


class FeedPost(BaseModel):
    """Post joined with its author's profile and the viewer's like status.

    Built client-side on every feed fetch and never persisted. ``author`` is
    always a resolved profile.
    """

    model_config = ConfigDict(extra="ignore")

    post: Post
    author: Profile
    is_liked: bool = False


# =============================================================================
# Section 3: Identity and Session
# =============================================================================


class Identity(BaseModel):
    """Authenticated identity issued by the identity provider.

    Attributes:
        principal: Opaque, globally unique actor identifier
        delegation: Bearer credential attached to remote calls
        expires_at: Absolute expiry enforced by the provider, if known
    """

    model_config = ConfigDict(frozen=True)

    principal: str
    delegation: SecretStr
    expires_at: Optional[datetime] = None

    @field_validator("principal")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("principal cannot be empty")
        return v


class SessionPhase(StrEnum):
    """Session manager lifecycle."""

    UNINITIALIZED = "uninitialized"
    CHECKING = "checking"
    UNAUTHENTICATED = "unauthenticated"
    NEEDS_PROFILE = "needs_profile"
    READY = "ready"


class Session(BaseModel):
    """Immutable snapshot of the session manager's state.

    Invariant: an unauthenticated session carries neither an identity
    handle nor a profile.
    """

    model_config = ConfigDict(frozen=True)

    phase: SessionPhase = SessionPhase.UNINITIALIZED
    principal: Optional[str] = None
    authenticated: bool = False
    privacy_mode: PrivacyMode = PrivacyMode.STANDARD
    profile: Optional[Profile] = None
    loading: bool = True
    error: Optional[ServiceError] = None
    session_ceiling: Optional[timedelta] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "Session":
        if not self.authenticated and (self.profile is not None or self.principal is not None):
            raise ValueError("unauthenticated session cannot hold an identity or profile")
        if self.authenticated and self.principal is None:
            raise ValueError("authenticated session requires an identity handle")
        if self.phase == SessionPhase.READY and self.profile is None:
            raise ValueError("ready session requires a profile")
        return self

    @property
    def has_profile(self) -> bool:
        return self.profile is not None

    @property
    def needs_profile(self) -> bool:
        return self.phase == SessionPhase.NEEDS_PROFILE


__all__ = [
    "PrivacySettings",
    "Profile",
    "Post",
    "Comment",
    "FollowRequest",
    "PlatformStats",
    "FeedPost",
    "Identity",
    "SessionPhase",
    "Session",
]
