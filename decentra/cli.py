"""Command-line interface for the deCentra client.

This module provides a Typer-based CLI over the social service.

Commands:
- feed: Show the public feed, or your personalized feed with --personal
- post: Publish a post
- comment: Comment on a post
- like / unlike: Toggle your like on a post
- follow / unfollow: Toggle following a user
- requests: List, approve or reject pending follow requests
- whoami: Log in and show your session and profile
- stats: Show platform-wide counters
- health: Check backend health

The CLI authenticates with a pre-issued delegation taken from
``IDENTITY_TOKEN`` and ``IDENTITY_PRINCIPAL``.

Example:
    $ decentra feed --limit 20
    $ decentra post "Hello from the terminal"
    $ decentra like 42
    $ decentra whoami --mode whistleblower
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import NamedTuple, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from decentra.config import PrivacyMode, settings
from decentra.errors import ServiceError
from decentra.gateway import AsyncRemoteGateway
from decentra.identity import TokenIdentityProvider
from decentra.logging import setup_logging
from decentra.models import FeedPost
from decentra.optimistic import FollowToggle, LikeToggle
from decentra.result import Result
from decentra.service import SocialService
from decentra.session import SessionManager
from decentra.utils import (
    format_engagement_count,
    redact_token,
    relative_time,
    visibility_from_label,
    visibility_label,
)

# Initialize CLI app
app = typer.Typer(
    name="decentra",
    help="Privacy-first social network client",
    add_completion=False,
)
console = Console()


# =============================================================================
# Helper Functions
# =============================================================================


def configure_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, set DEBUG level; otherwise WARNING
    """
    setup_logging(level="DEBUG" if verbose else "WARNING", json_logs=settings.log_json)


def run_async(coro):
    """Run async coroutine in event loop."""
    return asyncio.run(coro)


def fail_with(error: ServiceError) -> NoReturn:
    """Print a tagged failure and exit with status 1."""
    console.print(f"❌ [bold red]{escape(str(error))}[/bold red]")
    raise typer.Exit(code=1)


def unwrap(result: Result):
    """Return the value of an ``Ok`` or exit on ``Err``."""
    if not result.ok:
        fail_with(result.error)
    return result.value


class ClientContext(NamedTuple):
    """Wired client components for one command."""

    gateway: AsyncRemoteGateway
    session: SessionManager
    service: SocialService


@asynccontextmanager
async def open_client(
    mode: Optional[PrivacyMode] = None, login: bool = True
) -> AsyncIterator[ClientContext]:
    """Build gateway, session and service, optionally logging in.

    Args:
        mode: Privacy mode requested at login
        login: Authenticate before yielding

    Yields:
        ClientContext for the command body
    """
    gateway = AsyncRemoteGateway()
    session = SessionManager(TokenIdentityProvider.from_settings(), gateway)
    service = SocialService(
        gateway,
        rate_limiter=session.rate_limiter,
        viewer=session.current_profile,
        on_activity=session.record_activity,
    )

    try:
        if login:
            unwrap(await session.login(mode))
            if session.state.error is not None:
                fail_with(session.state.error)
        yield ClientContext(gateway=gateway, session=session, service=service)
    finally:
        await session.close()
        await gateway.close()


def render_feed(feed_posts: list[FeedPost], title: str) -> Table:
    """Render feed posts as a Rich table."""
    table = Table(title=title)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Author", style="cyan")
    table.add_column("Post")
    table.add_column("♥", justify="right", style="green")
    table.add_column("💬", justify="right", style="green")
    table.add_column("When", style="yellow")

    for item in feed_posts:
        author = f"@{item.author.username}"
        if item.author.is_verified:
            author += " ✓"
        likes = format_engagement_count(item.post.like_count)
        if item.is_liked:
            likes = f"[bold]{likes}[/bold]"
        table.add_row(
            str(item.post.id),
            author,
            escape(item.post.content),
            likes,
            format_engagement_count(item.post.comment_count),
            relative_time(item.post.created_at),
        )
    return table


# =============================================================================
# CLI Commands
# =============================================================================


@app.command()
def feed(
    personal: bool = typer.Option(
        False,
        "--personal",
        "-p",
        help="Show your personalized feed instead of the public one",
    ),
    offset: int = typer.Option(0, "--offset", help="Number of posts to skip"),
    limit: int = typer.Option(10, "--limit", "-n", help="Posts per page (max 50)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Show the public feed or your personalized feed.

    Examples:
        $ decentra feed
        $ decentra feed --personal --limit 20
    """
    configure_logging(verbose)

    async def _feed():
        async with open_client(login=personal) as client:
            if personal:
                posts = unwrap(await client.service.get_user_feed(offset, limit))
                title = "Your Feed"
            else:
                posts = unwrap(await client.service.get_social_feed(offset, limit))
                title = "Public Feed"

            if not posts:
                console.print("📭 No posts yet")
                return
            console.print(render_feed(posts, title))

    run_async(_feed())


@app.command()
def post(
    content: str = typer.Argument(..., help="Post text (max 10,000 characters)"),
    visibility: str = typer.Option(
        "public",
        "--visibility",
        help="Who can see the post: public, followers only or unlisted",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Publish a post."""
    configure_logging(verbose)

    try:
        chosen = visibility_from_label(visibility)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--visibility")

    async def _post():
        async with open_client() as client:
            post_id = unwrap(await client.service.create_post(content, chosen))
            console.print(
                f"✅ [bold green]Post {post_id} published[/bold green] "
                f"({visibility_label(chosen)})"
            )

    run_async(_post())


@app.command()
def comment(
    post_id: int = typer.Argument(..., help="Post to comment on"),
    content: str = typer.Argument(..., help="Comment text"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Comment on a post."""
    configure_logging(verbose)

    async def _comment():
        async with open_client() as client:
            created = unwrap(await client.service.add_comment(post_id, content))
            console.print(
                f"✅ [bold green]Comment {created.id} added to post {post_id}[/bold green]"
            )

    run_async(_comment())


async def _set_like(post_id: int, liked: bool) -> None:
    async with open_client() as client:
        current = unwrap(await client.service.get_post(post_id))
        is_liked = unwrap(await client.service.is_post_liked(post_id))
        if is_liked == liked:
            console.print(f"ℹ️  Post {post_id} is already {'liked' if liked else 'not liked'}")
            return

        toggle = LikeToggle(
            client.service,
            post_id,
            is_liked=is_liked,
            like_count=current.like_count if current else 0,
            actor_id=client.session.state.principal,
        )
        state = unwrap(await toggle.toggle())
        verb = "Liked" if state.active else "Unliked"
        console.print(
            f"✅ [bold green]{verb} post {post_id}[/bold green] "
            f"(♥ {format_engagement_count(state.count)})"
        )


@app.command()
def like(
    post_id: int = typer.Argument(..., help="Post to like"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Like a post."""
    configure_logging(verbose)
    run_async(_set_like(post_id, True))


@app.command()
def unlike(
    post_id: int = typer.Argument(..., help="Post to unlike"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Remove your like from a post."""
    configure_logging(verbose)
    run_async(_set_like(post_id, False))


async def _set_follow(user_id: str, following: bool) -> None:
    async with open_client() as client:
        target = unwrap(await client.service.get_user_profile(user_id))
        toggle = FollowToggle(
            client.service,
            user_id,
            follower_count=target.follower_count if target else 0,
            actor_id=client.session.state.principal,
        )
        if not toggle.visible:
            console.print("ℹ️  You cannot follow yourself")
            return

        unwrap(await toggle.refresh())
        if toggle.is_following == following:
            state = "already following" if following else "not following"
            console.print(f"ℹ️  You are {state} {escape(user_id)}")
            return

        state = unwrap(await toggle.toggle())
        verb = "Following" if state.active else "Unfollowed"
        console.print(f"✅ [bold green]{verb} {escape(user_id)}[/bold green]")


@app.command()
def follow(
    user_id: str = typer.Argument(..., help="Principal of the user to follow"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Follow a user."""
    configure_logging(verbose)
    run_async(_set_follow(user_id, True))


@app.command()
def unfollow(
    user_id: str = typer.Argument(..., help="Principal of the user to unfollow"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Stop following a user."""
    configure_logging(verbose)
    run_async(_set_follow(user_id, False))


@app.command()
def requests(
    approve: Optional[int] = typer.Option(None, "--approve", help="Approve request ID"),
    reject: Optional[int] = typer.Option(None, "--reject", help="Reject request ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """List pending follow requests, or approve/reject one.

    Examples:
        $ decentra requests
        $ decentra requests --approve 7
    """
    configure_logging(verbose)

    async def _requests():
        async with open_client() as client:
            if approve is not None:
                unwrap(await client.service.approve_follow_request(approve))
                console.print(f"✅ [bold green]Approved request {approve}[/bold green]")
                return
            if reject is not None:
                unwrap(await client.service.reject_follow_request(reject))
                console.print(f"✅ [bold green]Rejected request {reject}[/bold green]")
                return

            pending = unwrap(await client.service.get_pending_follow_requests())
            if not pending:
                console.print("📭 No pending follow requests")
                return

            table = Table(title="Pending Follow Requests")
            table.add_column("ID", justify="right", style="dim")
            table.add_column("From", style="cyan")
            table.add_column("When", style="yellow")
            for request in pending:
                table.add_row(
                    str(request.id),
                    escape(request.requester_id),
                    relative_time(request.created_at),
                )
            console.print(table)

    run_async(_requests())


@app.command()
def whoami(
    mode: PrivacyMode = typer.Option(
        PrivacyMode.STANDARD,
        "--mode",
        "-m",
        help="Privacy mode for this session",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Log in and show the current session and profile."""
    configure_logging(verbose)

    async def _whoami():
        async with open_client(mode) as client:
            state = client.session.state

            table = Table(title="Session", show_header=False)
            table.add_column("Field", style="cyan")
            table.add_column("Value", style="green")
            table.add_row("Principal", redact_token(state.principal))
            table.add_row("Privacy Mode", state.privacy_mode.value)
            if state.session_ceiling is not None:
                hours = state.session_ceiling.total_seconds() / 3600
                table.add_row("Session Ceiling", f"{hours:g} hours")

            if state.profile is None:
                table.add_row("Profile", "not created yet")
            else:
                profile = state.profile
                table.add_row("Username", f"@{profile.username}")
                table.add_row("Bio", escape(profile.bio) or "N/A")
                table.add_row("Followers", format_engagement_count(profile.follower_count))
                table.add_row("Following", format_engagement_count(profile.following_count))
                table.add_row("Posts", format_engagement_count(profile.post_count))
                table.add_row("Verification", profile.verification_status.value)

            console.print(table)

            if state.needs_profile:
                console.print("\n👋 No profile yet. Create one to start posting.")

    run_async(_whoami())


@app.command()
def stats(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Show platform-wide counters."""
    configure_logging(verbose)

    async def _stats():
        async with open_client(login=False) as client:
            counters = unwrap(await client.service.get_platform_stats())

            table = Table(title="Platform Statistics")
            table.add_column("Entity", style="cyan")
            table.add_column("Count", justify="right", style="green")
            table.add_row("Users", f"{counters.total_users:,}")
            table.add_row("Posts", f"{counters.total_posts:,}")
            table.add_row("Likes", f"{counters.total_likes:,}")
            table.add_row("Comments", f"{counters.total_comments:,}")
            console.print(table)

    run_async(_stats())


@app.command()
def health(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Check backend health and connectivity."""
    configure_logging(verbose)

    console.print(f"🌐 Endpoint: [yellow]{settings.rpc_base_url}[/yellow]")

    async def _health():
        async with open_client(login=False) as client:
            status = unwrap(await client.service.health_check())
            console.print(f"✅ [bold green]Backend status: {escape(status)}[/bold green]")

            rate_limit = client.gateway.get_rate_limit_status()
            if rate_limit.get("remaining"):
                console.print(
                    f"📊 Rate Limit: {rate_limit['remaining']}/{rate_limit['limit']} "
                    f"remaining (resets at {rate_limit['reset'] or 'unknown'})"
                )

    run_async(_health())


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
