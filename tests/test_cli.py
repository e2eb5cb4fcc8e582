"""Unit tests for CLI commands."""

from unittest.mock import MagicMock, patch

import pytest
import typer
from typer.testing import CliRunner

from conftest import ALICE, BOB, FakeGateway, FakeIdentityProvider, build_post, build_profile
from decentra.cli import app
from decentra.models import FeedPost, FollowRequest

runner = CliRunner()


@pytest.fixture
def cli_gateway() -> FakeGateway:
    gateway = FakeGateway()
    gateway.my_profile = build_profile(ALICE, "alice")
    return gateway


@pytest.fixture
def cli_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def invoke(cli_gateway: FakeGateway, cli_provider: FakeIdentityProvider):
    """Invoke the CLI with the fake backend and identity provider wired in."""

    def _invoke(*args: str):
        provider_cls = MagicMock()
        provider_cls.from_settings.return_value = cli_provider
        with (
            patch("decentra.cli.AsyncRemoteGateway", return_value=cli_gateway),
            patch("decentra.cli.TokenIdentityProvider", provider_cls),
        ):
            return runner.invoke(app, list(args))

    return _invoke


class TestCLICommands:
    """Tests for CLI commands."""

    def test_cli_app_exists(self):
        """Test CLI app is defined."""
        assert isinstance(app, typer.Typer)

    def test_health(self, invoke, cli_gateway: FakeGateway):
        result = invoke("health")

        assert result.exit_code == 0
        assert "Backend status: ok" in result.stdout
        assert cli_gateway.calls["get_my_profile"] == 0
        assert cli_gateway.closed

    def test_stats(self, invoke):
        result = invoke("stats")

        assert result.exit_code == 0
        assert "Platform Statistics" in result.stdout
        assert "40" in result.stdout

    def test_public_feed(self, invoke, cli_gateway: FakeGateway):
        cli_gateway.social_feed = [
            FeedPost(post=build_post(1, BOB, content="hello decentra"), author=build_profile(BOB))
        ]

        result = invoke("feed")

        assert result.exit_code == 0
        assert "@bob" in result.stdout
        assert "hello decentra" in result.stdout

    def test_empty_personal_feed(self, invoke, cli_gateway: FakeGateway):
        result = invoke("feed", "--personal")

        assert result.exit_code == 0
        assert "No posts yet" in result.stdout
        assert cli_gateway.calls["get_user_feed"] == 1


class TestMutations:
    """Tests for commands that change remote state."""

    def test_post(self, invoke, cli_gateway: FakeGateway):
        result = invoke("post", "Hello from the terminal", "--visibility", "followers only")

        assert result.exit_code == 0
        assert "Post 1 published" in result.stdout
        assert "Followers only" in result.stdout
        assert cli_gateway.posts[1].content == "Hello from the terminal"

    def test_post_empty_content_fails(self, invoke, cli_gateway: FakeGateway):
        result = invoke("post", "   ")

        assert result.exit_code == 1
        assert "CONTENT_EMPTY" in result.stdout
        assert cli_gateway.calls["create_post"] == 0

    def test_post_invalid_visibility(self, invoke, cli_gateway: FakeGateway):
        result = invoke("post", "Hello", "--visibility", "friends")

        assert result.exit_code == 2
        assert cli_gateway.calls["create_post"] == 0

    def test_comment(self, invoke):
        result = invoke("comment", "3", "Nice post")

        assert result.exit_code == 0
        assert "Comment 1 added to post 3" in result.stdout

    def test_like(self, invoke, cli_gateway: FakeGateway):
        cli_gateway.posts = {3: build_post(3, BOB, like_count=5)}

        result = invoke("like", "3")

        assert result.exit_code == 0
        assert "Liked post 3" in result.stdout
        assert cli_gateway.liked == {3}

    def test_like_when_already_liked(self, invoke, cli_gateway: FakeGateway):
        cli_gateway.posts = {3: build_post(3, BOB)}
        cli_gateway.liked = {3}

        result = invoke("like", "3")

        assert result.exit_code == 0
        assert "already liked" in result.stdout
        assert cli_gateway.calls["like_post"] == 0

    def test_unlike(self, invoke, cli_gateway: FakeGateway):
        cli_gateway.posts = {3: build_post(3, BOB)}
        cli_gateway.liked = {3}

        result = invoke("unlike", "3")

        assert result.exit_code == 0
        assert "Unliked post 3" in result.stdout
        assert cli_gateway.liked == set()

    def test_follow(self, invoke, cli_gateway: FakeGateway):
        cli_gateway.profiles = {BOB: build_profile(BOB)}

        result = invoke("follow", BOB)

        assert result.exit_code == 0
        assert "Following" in result.stdout
        assert cli_gateway.following == {BOB}

    def test_follow_self(self, invoke, cli_gateway: FakeGateway):
        result = invoke("follow", ALICE)

        assert result.exit_code == 0
        assert "cannot follow yourself" in result.stdout
        assert cli_gateway.calls["follow_user"] == 0

    def test_approve_request(self, invoke, cli_gateway: FakeGateway):
        cli_gateway.follow_requests = {7: FollowRequest(id=7, requester_id=BOB, target_id=ALICE)}

        result = invoke("requests", "--approve", "7")

        assert result.exit_code == 0
        assert "Approved request 7" in result.stdout
        assert cli_gateway.follow_requests == {}

    def test_no_pending_requests(self, invoke):
        result = invoke("requests")

        assert result.exit_code == 0
        assert "No pending follow requests" in result.stdout


class TestSessionCommands:
    """Tests for login-driven commands."""

    def test_whoami(self, invoke, cli_provider: FakeIdentityProvider):
        result = invoke("whoami", "--mode", "whistleblower")

        assert result.exit_code == 0
        assert "@alice" in result.stdout
        assert "whistleblower" in result.stdout
        assert "2 hours" in result.stdout
        assert [c.total_seconds() for c in cli_provider.requested_ceilings] == [7_200]

    def test_whoami_without_profile(self, invoke, cli_gateway: FakeGateway):
        cli_gateway.my_profile = None

        result = invoke("whoami")

        assert result.exit_code == 0
        assert "not created yet" in result.stdout
        assert "No profile yet" in result.stdout

    def test_login_failure(self, invoke, cli_provider: FakeIdentityProvider, cli_gateway: FakeGateway):
        cli_provider.error = "No identity configured"

        result = invoke("whoami")

        assert result.exit_code == 1
        assert "SESSION_ERROR" in result.stdout
        assert cli_gateway.closed
