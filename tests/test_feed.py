"""Tests for the feed aggregation engine."""

import pytest

from conftest import ALICE, BOB, CAROL, FakeGateway
from decentra.errors import ErrorKind, RemoteCallError
from decentra.feed import FeedAggregator, join_feed_posts, resolve_viewer
from decentra.models import FeedPost


@pytest.fixture
def aggregator(gateway: FakeGateway, alice_profile) -> FeedAggregator:
    return FeedAggregator(gateway, viewer=lambda: alice_profile, timeout=1.0)


# =============================================================================
# Personalized Feed
# =============================================================================


@pytest.mark.asyncio
async def test_post_with_unresolved_author_dropped(
    gateway: FakeGateway, aggregator: FeedAggregator, make_profile, make_post
):
    """Three raw posts with one missing author yield exactly two FeedPosts."""
    gateway.profiles = {ALICE: make_profile(ALICE), BOB: make_profile(BOB)}
    gateway.feed_posts = [make_post(1, ALICE), make_post(2, CAROL), make_post(3, BOB)]
    gateway.liked = {3}

    result = await aggregator.get_user_feed()

    assert result.ok
    feed = result.value
    assert [item.post.id for item in feed] == [1, 3]
    assert [item.author.id for item in feed] == [ALICE, BOB]
    assert [item.is_liked for item in feed] == [False, True]


@pytest.mark.asyncio
async def test_author_lookup_failure_drops_post(
    gateway: FakeGateway, aggregator: FeedAggregator, make_profile, make_post
):
    gateway.profiles = {ALICE: make_profile(ALICE), BOB: make_profile(BOB)}
    gateway.profile_raises = {BOB: RemoteCallError("HTTP 404")}
    gateway.feed_posts = [make_post(1, ALICE), make_post(2, BOB)]

    result = await aggregator.get_user_feed()

    assert [item.post.id for item in result.value] == [1]


@pytest.mark.asyncio
async def test_shared_author_resolved_once(
    gateway: FakeGateway, aggregator: FeedAggregator, make_profile, make_post
):
    gateway.profiles = {BOB: make_profile(BOB)}
    gateway.feed_posts = [make_post(i, BOB) for i in range(1, 6)]

    result = await aggregator.get_user_feed()

    assert len(result.value) == 5
    assert gateway.calls["get_user_profile"] == 1
    assert gateway.calls["is_post_liked"] == 5


@pytest.mark.asyncio
async def test_like_status_failure_defaults_to_not_liked(
    gateway: FakeGateway, aggregator: FeedAggregator, make_profile, make_post
):
    gateway.profiles = {BOB: make_profile(BOB)}
    gateway.feed_posts = [make_post(1, BOB), make_post(2, BOB)]
    gateway.liked = {1, 2}
    gateway.like_raises = {2: RemoteCallError("HTTP 500")}

    result = await aggregator.get_user_feed()

    assert [item.is_liked for item in result.value] == [True, False]


@pytest.mark.asyncio
async def test_unauthenticated_fails_before_feed_call(gateway: FakeGateway):
    aggregator = FeedAggregator(gateway, viewer=lambda: None, timeout=1.0)

    result = await aggregator.get_user_feed()

    assert not result.ok
    assert result.error.kind == ErrorKind.AUTH_REQUIRED
    assert result.error.requires_login
    assert gateway.calls["get_user_feed"] == 0


@pytest.mark.asyncio
async def test_viewer_checked_remotely_without_session(gateway: FakeGateway, make_post):
    aggregator = FeedAggregator(gateway, timeout=1.0)
    gateway.feed_posts = [make_post(1, BOB)]

    result = await aggregator.get_user_feed()

    assert result.error.kind == ErrorKind.AUTH_REQUIRED
    assert gateway.calls["get_my_profile"] == 1
    assert gateway.calls["get_user_feed"] == 0


@pytest.mark.asyncio
async def test_feed_remote_error_is_tagged(gateway: FakeGateway, aggregator: FeedAggregator):
    gateway.errors["get_user_feed"] = "Backend is read-only"

    result = await aggregator.get_user_feed()

    assert result.error.kind == ErrorKind.FEED_FETCH_FAILED
    assert result.error.message == "Backend is read-only"


@pytest.mark.asyncio
async def test_feed_timeout(gateway: FakeGateway, alice_profile):
    gateway.delays["get_user_feed"] = 0.5
    aggregator = FeedAggregator(gateway, viewer=lambda: alice_profile, timeout=0.01)

    result = await aggregator.get_user_feed()

    assert result.error.kind == ErrorKind.TIMEOUT
    assert result.error.retryable


@pytest.mark.asyncio
async def test_empty_page_skips_secondary_lookups(
    gateway: FakeGateway, aggregator: FeedAggregator
):
    result = await aggregator.get_user_feed()

    assert result.ok
    assert result.value == []
    assert gateway.calls["get_user_profile"] == 0
    assert gateway.calls["is_post_liked"] == 0


@pytest.mark.asyncio
async def test_pagination_clamped_before_remote_call(
    gateway: FakeGateway, aggregator: FeedAggregator
):
    await aggregator.get_user_feed(offset=-3, limit=500)
    await aggregator.get_social_feed(offset=50_000, limit=None)

    assert gateway.args_for("get_user_feed") == [(0, 50)]
    assert gateway.args_for("get_social_feed") == [(10_000, 10)]


# =============================================================================
# Public Feed
# =============================================================================


@pytest.mark.asyncio
async def test_social_feed_passes_through(
    gateway: FakeGateway, make_profile, make_post
):
    gateway.social_feed = [
        FeedPost(post=make_post(7, BOB), author=make_profile(BOB), is_liked=True)
    ]
    aggregator = FeedAggregator(gateway, viewer=lambda: None, timeout=1.0)

    result = await aggregator.get_social_feed()

    assert result.ok
    assert result.value[0].post.id == 7
    assert gateway.calls["get_user_profile"] == 0


@pytest.mark.asyncio
async def test_social_feed_error_is_tagged(gateway: FakeGateway, aggregator: FeedAggregator):
    gateway.errors["get_social_feed"] = "Service unavailable"

    result = await aggregator.get_social_feed()

    assert result.error.kind == ErrorKind.SOCIAL_FEED_FETCH_FAILED
    assert result.error.message == "Service unavailable"


# =============================================================================
# Helpers
# =============================================================================


def test_join_feed_posts(make_profile, make_post):
    posts = [make_post(1, ALICE), make_post(2, BOB), make_post(3, ALICE)]
    authors = {ALICE: make_profile(ALICE)}

    joined = join_feed_posts(posts, authors, {"3": True})

    assert [(item.post.id, item.is_liked) for item in joined] == [(1, False), (3, True)]


@pytest.mark.asyncio
async def test_resolve_viewer_uses_lookup(gateway: FakeGateway, alice_profile):
    result = await resolve_viewer(gateway, lambda: alice_profile, 1.0)

    assert result.value is alice_profile
    assert gateway.calls["get_my_profile"] == 0


@pytest.mark.asyncio
async def test_resolve_viewer_remote_failure(gateway: FakeGateway):
    gateway.raises["get_my_profile"] = RemoteCallError("HTTP 401")

    result = await resolve_viewer(gateway, None, 1.0)

    assert result.error.kind == ErrorKind.PROFILE_FETCH_FAILED
