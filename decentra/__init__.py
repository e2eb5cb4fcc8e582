"""deCentra - privacy-first social network client.

This package provides an asyncio client for a remote, authenticated social
network service: a denormalized feed engine with batched author and
like-status resolution, optimistic like/follow toggles reconciled against
the server, and a session manager whose lifetime depends on the selected
privacy mode.

Example:
    >>> from decentra import AsyncRemoteGateway, SocialService
    >>> import asyncio
    >>>
    >>> async def main():
    ...     async with AsyncRemoteGateway() as gateway:
    ...         service = SocialService(gateway)
    ...         result = await service.get_social_feed(limit=10)
    ...         if result.ok:
    ...             for item in result.value:
    ...                 print(item.author.username, item.post.content)
    >>>
    >>> asyncio.run(main())
"""

from decentra.config import PostVisibility, PrivacyMode, settings
from decentra.errors import ErrorKind, ServiceError
from decentra.feed import FeedAggregator
from decentra.gateway import AsyncRemoteGateway
from decentra.guard import RateLimiter
from decentra.identity import TokenIdentityProvider
from decentra.models import (
    Comment,
    FeedPost,
    FollowRequest,
    Identity,
    PlatformStats,
    Post,
    Profile,
    Session,
    SessionPhase,
)
from decentra.optimistic import FollowToggle, InFlightRegistry, LikeToggle
from decentra.result import Err, Ok, Result
from decentra.service import SocialService
from decentra.session import SessionManager

__version__ = "0.1.0"

__all__ = [
    # Main components
    "AsyncRemoteGateway",
    "SocialService",
    "FeedAggregator",
    "SessionManager",
    "TokenIdentityProvider",
    "RateLimiter",
    "LikeToggle",
    "FollowToggle",
    "InFlightRegistry",
    # Configuration
    "settings",
    "PrivacyMode",
    "PostVisibility",
    # Results and errors
    "Ok",
    "Err",
    "Result",
    "ErrorKind",
    "ServiceError",
    # Pydantic models
    "Profile",
    "Post",
    "FeedPost",
    "Comment",
    "FollowRequest",
    "PlatformStats",
    "Identity",
    "Session",
    "SessionPhase",
]
