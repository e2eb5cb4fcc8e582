"""Tests for the guarded social service."""

import pytest

from conftest import ALICE, BOB, FakeClock, FakeGateway
from decentra.config import PostVisibility
from decentra.errors import ErrorKind, RemoteCallError, TransientRemoteError, fail
from decentra.guard import RateLimiter
from decentra.models import FollowRequest
from decentra.result import Ok
from decentra.service import SocialService, first_failure


@pytest.fixture
def service(gateway: FakeGateway, alice_profile, clock: FakeClock) -> SocialService:
    return SocialService(
        gateway,
        rate_limiter=RateLimiter(window_seconds=1.0, clock=clock),
        viewer=lambda: alice_profile,
        timeout=1.0,
    )


@pytest.fixture
def anonymous_service(gateway: FakeGateway) -> SocialService:
    return SocialService(gateway, viewer=lambda: None, timeout=1.0)


@pytest.mark.asyncio
async def test_remote_operations_report_activity(gateway: FakeGateway, alice_profile):
    touches: list[None] = []
    service = SocialService(
        gateway,
        viewer=lambda: alice_profile,
        timeout=1.0,
        on_activity=lambda: touches.append(None),
    )

    assert (await service.like_post(42)).ok
    assert (await service.get_user_feed()).ok
    assert (await service.get_social_feed()).ok

    assert len(touches) == 3


@pytest.mark.asyncio
async def test_rejected_input_is_not_activity(gateway: FakeGateway, alice_profile):
    touches: list[None] = []
    service = SocialService(
        gateway, viewer=lambda: alice_profile, timeout=1.0, on_activity=lambda: touches.append(None)
    )

    assert not (await service.like_post(-4)).ok

    assert touches == []


def test_first_failure():
    err = fail(ErrorKind.INVALID_POST_ID, "bad")

    assert first_failure(Ok(None), err, fail(ErrorKind.CONTENT_EMPTY, "x")) is err
    assert first_failure(Ok(None), Ok(1)) is None


# =============================================================================
# Posts
# =============================================================================


class TestCreatePost:
    """Tests for post creation."""

    @pytest.mark.asyncio
    async def test_success(self, service: SocialService, gateway: FakeGateway):
        result = await service.create_post("Hello world", PostVisibility.FOLLOWERS_ONLY)

        assert result.value == 1
        assert gateway.args_for("create_post") == [
            ("Hello world", PostVisibility.FOLLOWERS_ONLY)
        ]

    @pytest.mark.asyncio
    async def test_validation_before_network(self, service: SocialService, gateway: FakeGateway):
        result = await service.create_post("   ")

        assert result.error.kind == ErrorKind.CONTENT_EMPTY
        assert gateway.calls["create_post"] == 0

    @pytest.mark.asyncio
    async def test_rate_limit_checked_first(
        self, service: SocialService, gateway: FakeGateway, clock: FakeClock
    ):
        assert (await service.create_post("first")).ok

        second = await service.create_post("")
        assert second.error.kind == ErrorKind.RATE_LIMIT_EXCEEDED

        clock.advance(1.0)
        assert (await service.create_post("third")).ok
        assert gateway.calls["create_post"] == 2

    @pytest.mark.asyncio
    async def test_requires_auth(self, anonymous_service: SocialService, gateway: FakeGateway):
        result = await anonymous_service.create_post("Hello")

        assert result.error.kind == ErrorKind.AUTH_REQUIRED
        assert gateway.calls["create_post"] == 0

    @pytest.mark.asyncio
    async def test_remote_error_message_verbatim(
        self, service: SocialService, gateway: FakeGateway
    ):
        gateway.errors["create_post"] = "Post contains blocked words"

        result = await service.create_post("Hello")

        assert result.error.kind == ErrorKind.POST_CREATION_FAILED
        assert result.error.message == "Post contains blocked words"
        assert result.error.details == "Post contains blocked words"
        assert not result.error.retryable


@pytest.mark.asyncio
async def test_get_post(service: SocialService, gateway: FakeGateway, make_post):
    gateway.posts = {3: make_post(3, BOB)}

    assert (await service.get_post(3)).value.author_id == BOB
    assert (await service.get_post(4)).value is None
    assert (await service.get_post(0)).error.kind == ErrorKind.INVALID_POST_ID


@pytest.mark.asyncio
async def test_get_user_posts_clamps_pagination(service: SocialService, gateway: FakeGateway):
    result = await service.get_user_posts(BOB, offset=-1, limit=1_000)

    assert result.ok
    assert gateway.args_for("get_user_posts") == [(BOB, 0, 50)]
    assert (await service.get_user_posts("")).error.kind == ErrorKind.INVALID_USER_ID


# =============================================================================
# Engagement
# =============================================================================


@pytest.mark.asyncio
async def test_like_and_unlike(service: SocialService, gateway: FakeGateway):
    assert (await service.like_post(9)).ok
    assert (await service.unlike_post(9)).ok
    assert gateway.liked == set()


@pytest.mark.asyncio
async def test_like_invalid_id(service: SocialService, gateway: FakeGateway):
    result = await service.like_post(-4)

    assert result.error.kind == ErrorKind.INVALID_POST_ID
    assert gateway.calls["like_post"] == 0


@pytest.mark.asyncio
async def test_duplicate_like_is_flagged(service: SocialService, gateway: FakeGateway):
    gateway.liked = {9}

    result = await service.like_post(9)

    assert result.error.kind == ErrorKind.LIKE_FAILED
    assert result.error.is_duplicate_action


@pytest.mark.asyncio
async def test_is_post_liked(service: SocialService, gateway: FakeGateway):
    gateway.liked = {9}

    assert (await service.is_post_liked(9)).value is True
    assert (await service.is_post_liked(10)).value is False


@pytest.mark.asyncio
async def test_add_comment(service: SocialService, gateway: FakeGateway):
    result = await service.add_comment(5, "Nice post")

    assert result.value.content == "Nice post"
    assert result.value.post_id == 5


@pytest.mark.asyncio
async def test_add_comment_too_long(service: SocialService):
    result = await service.add_comment(5, "x" * 10_001)

    assert result.error.kind == ErrorKind.CONTENT_TOO_LONG
    assert result.error.message.startswith("Comment cannot exceed")


@pytest.mark.asyncio
async def test_get_post_comments(service: SocialService, gateway: FakeGateway):
    await service.add_comment(5, "first")

    result = await service.get_post_comments(5, limit=500)

    assert [c.content for c in result.value] == ["first"]
    assert gateway.args_for("get_post_comments") == [(5, 0, 50)]


# =============================================================================
# Social Graph
# =============================================================================


@pytest.mark.asyncio
async def test_follow_and_unfollow(service: SocialService, gateway: FakeGateway):
    assert (await service.follow_user(BOB)).ok
    assert gateway.following == {BOB}

    assert (await service.unfollow_user(BOB)).ok
    assert gateway.following == set()


@pytest.mark.asyncio
async def test_follow_transport_fault_is_retryable(service: SocialService, gateway: FakeGateway):
    gateway.raises["follow_user"] = TransientRemoteError("HTTP 503")

    result = await service.follow_user(BOB)

    assert result.error.kind == ErrorKind.FOLLOW_FAILED
    assert result.error.transient
    assert result.error.retryable
    assert "HTTP 503" in result.error.details


@pytest.mark.asyncio
async def test_unfollow_requires_user_id(service: SocialService):
    result = await service.unfollow_user("  ")

    assert result.error.kind == ErrorKind.INVALID_USER_ID


@pytest.mark.asyncio
async def test_is_following(service: SocialService, gateway: FakeGateway):
    gateway.following = {BOB}

    assert (await service.is_following(ALICE, BOB)).value is True
    assert (await service.is_following("", BOB)).error.kind == ErrorKind.INVALID_USER_ID


@pytest.mark.asyncio
async def test_followers_and_following(service: SocialService, gateway: FakeGateway, make_profile):
    gateway.profiles = {BOB: make_profile(BOB)}
    gateway.following = {BOB}

    followers = await service.get_followers(ALICE)
    following = await service.get_following(ALICE, offset=2, limit=5)

    assert [p.id for p in followers.value] == [BOB]
    assert [p.id for p in following.value] == [BOB]
    assert gateway.args_for("get_following") == [(ALICE, 2, 5)]


@pytest.mark.asyncio
async def test_follow_requests(service: SocialService, gateway: FakeGateway, clock: FakeClock):
    gateway.follow_requests = {
        7: FollowRequest(id=7, requester_id=BOB, target_id=ALICE),
        8: FollowRequest(id=8, requester_id="carol-principal-0003", target_id=ALICE),
    }

    pending = await service.get_pending_follow_requests()
    assert [r.id for r in pending.value] == [7, 8]

    assert (await service.approve_follow_request(7)).ok
    assert (await service.reject_follow_request(8)).ok

    clock.advance(1.0)
    missing = await service.approve_follow_request(7)
    assert missing.error.kind == ErrorKind.APPROVE_REQUEST_FAILED
    assert missing.error.message == "Follow request not found"

    invalid = await service.reject_follow_request(0)
    assert invalid.error.kind == ErrorKind.INVALID_REQUEST_ID


@pytest.mark.asyncio
async def test_follow_requests_require_auth(anonymous_service: SocialService, gateway: FakeGateway):
    result = await anonymous_service.get_pending_follow_requests()

    assert result.error.kind == ErrorKind.AUTH_REQUIRED
    assert gateway.calls["get_pending_follow_requests"] == 0


# =============================================================================
# Profiles and Platform
# =============================================================================


@pytest.mark.asyncio
async def test_get_user_profile(service: SocialService, gateway: FakeGateway, make_profile):
    gateway.profiles = {BOB: make_profile(BOB)}

    assert (await service.get_user_profile(BOB)).value.username == "bob"
    assert (await service.get_user_profile("nobody")).value is None


@pytest.mark.asyncio
async def test_get_user_profile_transport_error(service: SocialService, gateway: FakeGateway):
    gateway.profile_raises = {BOB: RemoteCallError("HTTP 403")}

    result = await service.get_user_profile(BOB)

    assert result.error.kind == ErrorKind.PROFILE_FETCH_FAILED
    assert not result.error.transient


@pytest.mark.asyncio
async def test_platform_stats_and_health(anonymous_service: SocialService):
    stats = await anonymous_service.get_platform_stats()
    health = await anonymous_service.health_check()

    assert stats.value.total_posts == 12
    assert health.value == "ok"


@pytest.mark.asyncio
async def test_health_check_timeout(gateway: FakeGateway):
    gateway.delays["health_check"] = 0.5
    service = SocialService(gateway, timeout=0.01)

    result = await service.health_check()

    assert result.error.kind == ErrorKind.TIMEOUT
