"""Pytest configuration and shared fixtures for deCentra tests."""

import asyncio
import sys
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest
from loguru import logger
from pydantic import SecretStr

from decentra.config import Settings
from decentra.models import (
    Comment,
    FeedPost,
    FollowRequest,
    Identity,
    PlatformStats,
    Post,
    Profile,
)
from decentra.result import Err, Ok


# =============================================================================
# Test Configuration
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure loguru for tests to avoid I/O errors."""
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level="ERROR",  # Only log errors during tests
        format="{time} {level} {message}",
        catch=True,  # Prevent exceptions in logging
    )
    yield
    logger.remove()  # Clean up after all tests


@pytest.fixture(scope="function", autouse=True)
def reset_loguru():
    """Reset loguru handlers before each test to prevent I/O errors."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="ERROR",
        format="{time} {level} {message}",
        catch=True,
    )
    yield
    logger.remove()


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    """Create test settings with temporary data directory."""
    monkeypatch.setenv("ENVIRONMENT", "testing")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("IDENTITY_TOKEN", "delegation-token-1234567890")
    monkeypatch.setenv("IDENTITY_PRINCIPAL", "alice-principal-0001")

    return Settings(_env_file=None)  # type: ignore[call-arg]


# =============================================================================
# Clocks
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Entity Factories
# =============================================================================

ALICE = "alice-principal-0001"
BOB = "bob-principal-0002"
CAROL = "carol-principal-0003"

BASE_TS = 1_700_000_000_000_000_000


def build_profile(user_id: str, username: Optional[str] = None, **overrides: Any) -> Profile:
    data = {
        "id": user_id,
        "username": username or user_id.split("-")[0],
        "bio": "",
        "avatar": "🦄",
        "follower_count": 10,
        "following_count": 5,
        "post_count": 3,
        "created_at": BASE_TS,
        "updated_at": BASE_TS,
    }
    data.update(overrides)
    return Profile.model_validate(data)


def build_post(post_id: int, author_id: str, **overrides: Any) -> Post:
    data = {
        "id": post_id,
        "author_id": author_id,
        "content": f"post number {post_id}",
        "visibility": "Public",
        "like_count": 5,
        "comment_count": 1,
        "created_at": BASE_TS + post_id,
        "updated_at": BASE_TS + post_id,
    }
    data.update(overrides)
    return Post.model_validate(data)


@pytest.fixture
def make_profile() -> Callable[..., Profile]:
    return build_profile


@pytest.fixture
def make_post() -> Callable[..., Post]:
    return build_post


# =============================================================================
# Fake Remote Gateway
# =============================================================================


class FakeGateway:
    """In-memory backend implementing ``IRemoteGateway``.

    Scripting hooks:
        errors: method name -> message returned as ``Err`` (Result methods)
        raises: method name -> exception raised instead of answering
        profile_raises: user id -> exception raised by ``get_user_profile``
        delays: method name -> seconds slept before answering
        gates: method name -> ``asyncio.Event`` awaited before answering
    """

    def __init__(self) -> None:
        self.identity: Optional[Identity] = None
        self.my_profile: Optional[Profile] = None
        self.profiles: dict[str, Profile] = {}
        self.posts: dict[int, Post] = {}
        self.feed_posts: list[Post] = []
        self.social_feed: list[FeedPost] = []
        self.liked: set[int] = set()
        self.following: set[str] = set()
        self.follow_requests: dict[int, FollowRequest] = {}
        self.comments: list[Comment] = []
        self.taken_usernames: set[str] = set()
        self.like_raises: dict[int, Exception] = {}

        self.errors: dict[str, str] = {}
        self.raises: dict[str, Exception] = {}
        self.profile_raises: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.gates: dict[str, asyncio.Event] = {}

        self.calls: Counter[str] = Counter()
        self.call_args: list[tuple[str, tuple[Any, ...]]] = []
        self.closed = False

    async def _enter(self, name: str, *args: Any) -> None:
        self.calls[name] += 1
        self.call_args.append((name, args))
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.raises:
            raise self.raises[name]

    def args_for(self, name: str) -> list[tuple[Any, ...]]:
        return [args for called, args in self.call_args if called == name]

    def set_identity(self, identity: Optional[Identity]) -> None:
        self.identity = identity

    # Posts
    async def create_post(self, content, visibility=None):
        await self._enter("create_post", content, visibility)
        if "create_post" in self.errors:
            return Err(self.errors["create_post"])
        post_id = max(self.posts, default=0) + 1
        author = self.identity.principal if self.identity else ALICE
        self.posts[post_id] = build_post(post_id, author, content=content, like_count=0)
        return Ok(post_id)

    async def get_post(self, post_id):
        await self._enter("get_post", post_id)
        return self.posts.get(post_id)

    async def get_user_posts(self, user_id, offset=None, limit=None):
        await self._enter("get_user_posts", user_id, offset, limit)
        if "get_user_posts" in self.errors:
            return Err(self.errors["get_user_posts"])
        return Ok([p for p in self.posts.values() if p.author_id == user_id])

    async def get_user_feed(self, offset=None, limit=None):
        await self._enter("get_user_feed", offset, limit)
        if "get_user_feed" in self.errors:
            return Err(self.errors["get_user_feed"])
        return Ok(list(self.feed_posts))

    async def get_social_feed(self, offset=None, limit=None):
        await self._enter("get_social_feed", offset, limit)
        if "get_social_feed" in self.errors:
            return Err(self.errors["get_social_feed"])
        return Ok(list(self.social_feed))

    # Likes and comments
    async def like_post(self, post_id):
        await self._enter("like_post", post_id)
        if "like_post" in self.errors:
            return Err(self.errors["like_post"])
        if post_id in self.liked:
            return Err("Already liked this post")
        self.liked.add(post_id)
        return Ok(None)

    async def unlike_post(self, post_id):
        await self._enter("unlike_post", post_id)
        if "unlike_post" in self.errors:
            return Err(self.errors["unlike_post"])
        if post_id not in self.liked:
            return Err("Post not liked")
        self.liked.discard(post_id)
        return Ok(None)

    async def is_post_liked(self, post_id):
        await self._enter("is_post_liked", post_id)
        if post_id in self.like_raises:
            raise self.like_raises[post_id]
        return Ok(post_id in self.liked)

    async def add_comment(self, post_id, content):
        await self._enter("add_comment", post_id, content)
        if "add_comment" in self.errors:
            return Err(self.errors["add_comment"])
        comment = Comment(
            id=len(self.comments) + 1,
            post_id=post_id,
            author_id=self.identity.principal if self.identity else ALICE,
            content=content,
            created_at=BASE_TS,
        )
        self.comments.append(comment)
        return Ok(comment)

    async def get_post_comments(self, post_id, offset=None, limit=None):
        await self._enter("get_post_comments", post_id, offset, limit)
        return Ok([c for c in self.comments if c.post_id == post_id])

    # Social graph
    async def follow_user(self, user_id):
        await self._enter("follow_user", user_id)
        if "follow_user" in self.errors:
            return Err(self.errors["follow_user"])
        if user_id in self.following:
            return Err("Already following this user")
        self.following.add(user_id)
        return Ok(None)

    async def unfollow_user(self, user_id):
        await self._enter("unfollow_user", user_id)
        if "unfollow_user" in self.errors:
            return Err(self.errors["unfollow_user"])
        if user_id not in self.following:
            return Err("Not following this user")
        self.following.discard(user_id)
        return Ok(None)

    async def is_following(self, follower_id, target_id):
        await self._enter("is_following", follower_id, target_id)
        return Ok(target_id in self.following)

    async def get_followers(self, user_id, offset=None, limit=None):
        await self._enter("get_followers", user_id, offset, limit)
        return Ok(list(self.profiles.values()))

    async def get_following(self, user_id, offset=None, limit=None):
        await self._enter("get_following", user_id, offset, limit)
        return Ok([self.profiles[uid] for uid in self.following if uid in self.profiles])

    async def get_pending_follow_requests(self):
        await self._enter("get_pending_follow_requests")
        return Ok(list(self.follow_requests.values()))

    async def approve_follow_request(self, request_id):
        await self._enter("approve_follow_request", request_id)
        if self.follow_requests.pop(request_id, None) is None:
            return Err("Follow request not found")
        return Ok(None)

    async def reject_follow_request(self, request_id):
        await self._enter("reject_follow_request", request_id)
        if self.follow_requests.pop(request_id, None) is None:
            return Err("Follow request not found")
        return Ok(None)

    # Profiles
    async def get_user_profile(self, user_id):
        await self._enter("get_user_profile", user_id)
        if user_id in self.profile_raises:
            raise self.profile_raises[user_id]
        return self.profiles.get(user_id)

    async def get_my_profile(self):
        await self._enter("get_my_profile")
        return self.my_profile

    async def create_user_profile(self, username, bio=None, avatar=None):
        await self._enter("create_user_profile", username, bio, avatar)
        if username in self.taken_usernames:
            return Err("Username already taken")
        principal = self.identity.principal if self.identity else ALICE
        self.my_profile = build_profile(
            principal, username, bio=bio or "", avatar=avatar or "", follower_count=0
        )
        self.profiles[principal] = self.my_profile
        return Ok(self.my_profile)

    async def update_user_profile(self, username=None, bio=None, avatar=None):
        await self._enter("update_user_profile", username, bio, avatar)
        if self.my_profile is None:
            return Err("Profile not found")
        changes = {
            key: value
            for key, value in {"username": username, "bio": bio, "avatar": avatar}.items()
            if value is not None
        }
        self.my_profile = self.my_profile.model_copy(update=changes)
        return Ok(self.my_profile)

    async def check_username_availability(self, username):
        await self._enter("check_username_availability", username)
        return Ok(username not in self.taken_usernames)

    # Platform
    async def get_platform_stats(self):
        await self._enter("get_platform_stats")
        return PlatformStats(total_users=3, total_posts=12, total_likes=40, total_comments=7)

    async def health_check(self):
        await self._enter("health_check")
        return "ok"

    def get_rate_limit_status(self) -> dict[str, Optional[str]]:
        return {"limit": None, "remaining": None, "reset": None}

    async def close(self):
        self.closed = True


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def alice_profile() -> Profile:
    return build_profile(ALICE, "alice")


# =============================================================================
# Fake Identity Provider
# =============================================================================


class FakeIdentityProvider:
    """Identity provider that records the requested session ceilings."""

    def __init__(
        self,
        principal: str = ALICE,
        error: Optional[str] = None,
        raises: Optional[Exception] = None,
    ) -> None:
        self.principal = principal
        self.error = error
        self.raises = raises
        self.identity: Optional[Identity] = None
        self.requested_ceilings: list[timedelta] = []
        self.logout_calls = 0

    async def login(self, session_ceiling, on_success, on_error):
        self.requested_ceilings.append(session_ceiling)
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            on_error(self.error)
            return
        self.identity = Identity(
            principal=self.principal,
            delegation=SecretStr("delegation-token-1234567890"),
            expires_at=datetime.now(timezone.utc) + session_ceiling,
        )
        on_success(self.identity)

    async def logout(self):
        self.logout_calls += 1
        self.identity = None

    async def is_authenticated(self):
        return self.identity is not None

    def get_identity(self):
        return self.identity


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()
