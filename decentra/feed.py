"""Feed aggregation engine.

Turns paginated remote post records into ready-to-render
:class:`~decentra.models.FeedPost` view models.

Personalized feed pipeline:
    1. Clamp pagination
    2. Require an authenticated profile (fails AUTH_REQUIRED before any feed call)
    3. Fetch the raw page of posts
    4. Return early on an empty page
    5-7. Resolve author profiles and the viewer's like status concurrently,
         both through batch resolution
    8. Join; posts whose author did not resolve are dropped, never emitted
       with a placeholder author

The public feed arrives already joined from the remote service and skips
steps 5-7.
"""

import asyncio
from collections.abc import Callable
from typing import Optional

from decentra.batch import resolve_like_statuses, resolve_profiles
from decentra.config import settings
from decentra.errors import ErrorKind, ServiceError, fail, settle_remote_call
from decentra.guard import validate_pagination_params
from decentra.interfaces import IRemoteGateway
from decentra.logging import logger
from decentra.metrics import feed_posts_dropped_total
from decentra.models import FeedPost, Post, Profile
from decentra.result import Ok, Result
from decentra.telemetry import add_span_attributes, get_tracer, mark_result, traced_span

tracer = get_tracer(__name__)

ViewerLookup = Callable[[], Optional[Profile]]


async def resolve_viewer(
    gateway: IRemoteGateway,
    viewer: Optional[ViewerLookup],
    timeout: float,
) -> Result[Profile, ServiceError]:
    """Return the caller's profile, or AUTH_REQUIRED when there is none.

    With a ``viewer`` callable (normally bound to the session manager) the
    check is local. Without one, the remote service is asked for the
    caller's profile.
    """
    if viewer is not None:
        profile = viewer()
    else:
        outcome = await settle_remote_call(
            gateway.get_my_profile(),
            kind=ErrorKind.PROFILE_FETCH_FAILED,
            action="verify authentication",
            timeout=timeout,
            component="feed",
        )
        if not outcome.ok:
            return outcome
        profile = outcome.value

    if profile is None:
        return fail(
            ErrorKind.AUTH_REQUIRED,
            "Authentication required. Please log in to access your feed.",
        )
    return Ok(profile)


def join_feed_posts(
    posts: list[Post],
    authors: dict[str, Profile],
    like_statuses: dict[str, bool],
) -> list[FeedPost]:
    """Join posts with resolved authors and like flags, dropping orphans.

    Missing like status defaults to ``False``.
    """
    feed_posts: list[FeedPost] = []
    for post in posts:
        author = authors.get(post.author_id)
        if author is None:
            logger.warning(f"No profile found for author {post.author_id}; dropping post {post.id}")
            feed_posts_dropped_total.inc()
            continue
        feed_posts.append(
            FeedPost(
                post=post,
                author=author,
                is_liked=like_statuses.get(str(post.id), False),
            )
        )
    return feed_posts


class FeedAggregator:
    """Builds personalized and public feeds.

    Args:
        gateway: Remote Access Gateway
        viewer: Callable returning the caller's profile, or ``None`` to ask
            the remote service
        timeout: Ceiling for each remote call
        batch_size: Chunk size for secondary lookups
    """

    def __init__(
        self,
        gateway: IRemoteGateway,
        *,
        viewer: Optional[ViewerLookup] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self._gateway = gateway
        self._viewer = viewer
        self._timeout = timeout or settings.remote_call_timeout_seconds
        self._batch_size = batch_size or settings.batch_size

    async def get_user_feed(
        self, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[FeedPost], ServiceError]:
        """Fetch the caller's personalized feed."""
        page = validate_pagination_params(offset, limit)

        with traced_span(
            tracer, "feed.user", {"feed.offset": page.offset, "feed.limit": page.limit}
        ) as span:

            viewer = await resolve_viewer(self._gateway, self._viewer, self._timeout)
            if not viewer.ok:
                mark_result(span, viewer)
                return viewer

            fetched = await settle_remote_call(
                self._gateway.get_user_feed(page.offset, page.limit),
                kind=ErrorKind.FEED_FETCH_FAILED,
                action="fetch user feed",
                timeout=self._timeout,
                component="feed",
            )
            if not fetched.ok:
                mark_result(span, fetched)
                return fetched

            posts: list[Post] = fetched.value
            if not posts:
                add_span_attributes(span, {"feed.posts": 0})
                return Ok([])

            authors, like_statuses = await asyncio.gather(
                resolve_profiles(
                    self._gateway,
                    [post.author_id for post in posts],
                    timeout=self._timeout,
                    batch_size=self._batch_size,
                ),
                resolve_like_statuses(
                    self._gateway,
                    [post.id for post in posts],
                    timeout=self._timeout,
                    batch_size=self._batch_size,
                ),
            )

            feed_posts = join_feed_posts(posts, authors, like_statuses)
            add_span_attributes(
                span,
                {
                    "feed.raw_posts": len(posts),
                    "feed.posts": len(feed_posts),
                    "feed.dropped": len(posts) - len(feed_posts),
                },
            )

        logger.info(f"User feed: {len(feed_posts)} posts (offset={page.offset}, limit={page.limit})")
        return Ok(feed_posts)

    async def get_social_feed(
        self, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> Result[list[FeedPost], ServiceError]:
        """Fetch the public feed, already joined by the remote service."""
        page = validate_pagination_params(offset, limit)

        with traced_span(
            tracer, "feed.social", {"feed.offset": page.offset, "feed.limit": page.limit}
        ) as span:

            fetched = await settle_remote_call(
                self._gateway.get_social_feed(page.offset, page.limit),
                kind=ErrorKind.SOCIAL_FEED_FETCH_FAILED,
                action="fetch social feed",
                timeout=self._timeout,
                component="feed",
            )
            if not fetched.ok:
                mark_result(span, fetched)
                return fetched

            add_span_attributes(span, {"feed.posts": len(fetched.value)})

        logger.info(f"Social feed: {len(fetched.value)} posts (offset={page.offset}, limit={page.limit})")
        return fetched


__all__ = ["FeedAggregator", "join_feed_posts", "resolve_viewer"]
