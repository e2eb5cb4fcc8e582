"""Privacy-mode session manager.

Owns the authenticated identity and the caller's profile, and exposes an
immutable :class:`~decentra.models.Session` snapshot to listeners.

Lifecycle::

    Uninitialized -> Checking -> Unauthenticated
                              -> Authenticated(NeedsProfile | Ready)

- ``login(mode)`` requests the privacy mode's session ceiling from the
  identity provider, which enforces it.
- ``logout()`` clears identity and profile and resets the privacy mode to
  standard. The idle watcher calls it after a period of inactivity.
- A missing profile after login is the normal first-login state and drives
  onboarding. Only a failed profile lookup is reported as a session error.

Privacy-mode session ceilings:

    ============== ===========
    standard       7 days
    anonymous      1 day
    whistleblower  2 hours
    ============== ===========
"""

import asyncio
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any, Optional

from decentra.config import PrivacyMode, Settings, settings
from decentra.errors import ErrorKind, ServiceError, fail, settle_remote_call
from decentra.guard import RateLimiter, validate_profile_fields, validate_username
from decentra.interfaces import IIdentityProvider, IRemoteGateway
from decentra.logging import bind_session, clear_session_context, logger
from decentra.metrics import active_sessions, session_logins_total
from decentra.models import Identity, Profile, Session, SessionPhase
from decentra.result import Err, Ok, Result
from decentra.utils import redact_token

SessionListener = Callable[[Session], None]


class SessionManager:
    """Owns identity, privacy mode, profile and idle expiry for one user.

    Args:
        provider: Identity provider running the login ceremony
        gateway: Remote gateway; receives the identity on login
        idle_timeout: Inactivity period that triggers logout
        timeout: Ceiling for each remote call
        clock: Monotonic clock in seconds, used for idle tracking
        rate_limiter: Session-scoped rate limiter (created when omitted)
        watch_idle: Start the background idle watcher on authentication

    Example:
        >>> manager = SessionManager(provider, gateway)
        >>> await manager.refresh()
        >>> result = await manager.login(PrivacyMode.WHISTLEBLOWER)
        >>> manager.state.needs_profile
        True
    """

    def __init__(
        self,
        provider: IIdentityProvider,
        gateway: IRemoteGateway,
        *,
        idle_timeout: Optional[timedelta] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        rate_limiter: Optional[RateLimiter] = None,
        watch_idle: bool = False,
    ) -> None:
        self._provider = provider
        self._watch_idle = watch_idle
        self._gateway = gateway
        self._idle_timeout = idle_timeout or settings.idle_timeout
        self._timeout = timeout or settings.remote_call_timeout_seconds
        self._clock = clock
        self.rate_limiter = rate_limiter or RateLimiter()

        self._state = Session()
        self._listeners: list[SessionListener] = []
        self._last_activity = clock()
        self._idle_task: Optional[asyncio.Task[None]] = None
        self._counted_active = False
        # Bumped whenever a session starts or ends; pending replies from an
        # older generation are discarded.
        self._generation = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> Session:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state.authenticated

    def current_profile(self) -> Optional[Profile]:
        """Viewer lookup for the feed engine and social service."""
        return self._state.profile

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener for session snapshots; returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _transition(self, **changes: Any) -> Session:
        self._state = Session(**{**dict(self._state), **changes})
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    def _reset(
        self, error: Optional[ServiceError] = None, *, keep_privacy_mode: bool = False
    ) -> Session:
        """Drop identity and profile; privacy mode returns to standard unless kept."""
        self._generation += 1
        return self._transition(
            phase=SessionPhase.UNAUTHENTICATED,
            principal=None,
            authenticated=False,
            profile=None,
            privacy_mode=self._state.privacy_mode if keep_privacy_mode else PrivacyMode.STANDARD,
            loading=False,
            error=error,
            session_ceiling=None,
        )

    def clear_error(self) -> None:
        if self._state.error is not None:
            self._transition(error=None)

    def set_privacy_mode(self, mode: PrivacyMode) -> Result[Session, ServiceError]:
        """Choose the privacy mode for the next login."""
        if self._state.authenticated:
            return fail(
                ErrorKind.SESSION_ERROR,
                "Privacy mode can only be changed while logged out",
            )
        return Ok(self._transition(privacy_mode=mode))

    def _ended_since(self, generation: int) -> Optional[Err[ServiceError]]:
        """``Err`` when the session that issued a pending call has since ended."""
        if generation == self._generation:
            return None
        logger.info("Session ended while a profile call was pending; reply discarded")
        return fail(ErrorKind.SESSION_ERROR, "Session ended before the operation completed")

    # =========================================================================
    # Authentication
    # =========================================================================

    async def refresh(self) -> Session:
        """Re-run the provider round-trip (startup and manual refresh).

        An identity that expired while logged in ends the session exactly as
        :meth:`logout` does. With nobody logged in, the selected privacy mode
        is kept for the next login.
        """
        was_authenticated = self._state.authenticated
        self._transition(phase=SessionPhase.CHECKING, loading=True, error=None)

        try:
            authenticated = await self._provider.is_authenticated()
            identity = self._provider.get_identity() if authenticated else None
        except Exception as exc:
            logger.error(f"Session check failed: {exc}")
            error = ServiceError(
                kind=ErrorKind.SESSION_ERROR,
                message="Authentication initialization failed",
                details=str(exc),
            )
            if was_authenticated:
                return self._end_session(error)
            self._gateway.set_identity(None)
            self._mark_inactive()
            return self._reset(error, keep_privacy_mode=True)

        if identity is None:
            if was_authenticated:
                logger.warning("Identity expired; session ended")
                return self._end_session()
            self._gateway.set_identity(None)
            self._mark_inactive()
            return self._reset(keep_privacy_mode=True)

        authenticated_session = await self._authenticate(identity, self._state.privacy_mode)
        return authenticated_session.value if authenticated_session.ok else self._state

    async def login(self, mode: Optional[PrivacyMode] = None) -> Result[Session, ServiceError]:
        """Authenticate through the identity provider.

        Args:
            mode: Privacy mode for this session (defaults to the selected one)

        Returns:
            ``Ok(session)`` once authenticated, even without a profile;
            ``Err`` when the provider reports a failure
        """
        if self._state.authenticated:
            return Ok(self._state)

        mode = mode or self._state.privacy_mode
        ceiling = Settings.session_ceiling(mode)
        self._transition(
            phase=SessionPhase.CHECKING,
            privacy_mode=mode,
            loading=True,
            error=None,
        )
        logger.info(f"Login requested ({mode.value}, ceiling {int(ceiling.total_seconds())}s)")

        issued: list[Identity] = []
        failures: list[str] = []

        try:
            await self._provider.login(
                session_ceiling=ceiling,
                on_success=issued.append,
                on_error=failures.append,
            )
        except Exception as exc:
            failures.append(str(exc) or "Login failed")

        if not issued:
            message = failures[0] if failures else "Login failed"
            session_logins_total.labels(privacy_mode=mode.value, status="failed").inc()
            logger.warning(f"Login failed: {message}")
            self._gateway.set_identity(None)
            error = ServiceError(kind=ErrorKind.SESSION_ERROR, message=message)
            self._transition(
                phase=SessionPhase.UNAUTHENTICATED, loading=False, error=error
            )
            return fail(ErrorKind.SESSION_ERROR, message)

        session_logins_total.labels(privacy_mode=mode.value, status="success").inc()
        return await self._authenticate(issued[0], mode, ceiling)

    async def _authenticate(
        self,
        identity: Identity,
        mode: PrivacyMode,
        ceiling: Optional[timedelta] = None,
    ) -> Result[Session, ServiceError]:
        self._generation += 1
        generation = self._generation
        self._gateway.set_identity(identity)
        bind_session(identity.principal, mode.value)
        self._mark_active()
        self.record_activity()

        self._transition(
            phase=SessionPhase.NEEDS_PROFILE,
            principal=identity.principal,
            authenticated=True,
            privacy_mode=mode,
            profile=None,
            loading=True,
            error=None,
            session_ceiling=ceiling or Settings.session_ceiling(mode),
        )
        if self._watch_idle:
            self.start_idle_watch()

        loaded = await settle_remote_call(
            self._gateway.get_my_profile(),
            kind=ErrorKind.PROFILE_FETCH_FAILED,
            action="load your profile",
            timeout=self._timeout,
            component="session",
        )
        ended = self._ended_since(generation)
        if ended is not None:
            return ended

        if not loaded.ok:
            return Ok(self._transition(loading=False, error=loaded.error))

        profile: Optional[Profile] = loaded.value
        if profile is None:
            logger.info(
                f"Authenticated {redact_token(identity.principal)} without a profile; "
                "onboarding required"
            )
            return Ok(self._transition(loading=False))

        logger.info(f"Authenticated {redact_token(identity.principal)} as @{profile.username}")
        return Ok(self._transition(phase=SessionPhase.READY, profile=profile, loading=False))

    async def logout(self) -> Session:
        """End the session: identity, profile and privacy mode are reset."""
        self._stop_idle_watch()
        error: Optional[ServiceError] = None
        try:
            await self._provider.logout()
        except Exception as exc:
            logger.error(f"Identity provider logout failed: {exc}")
            error = ServiceError(
                kind=ErrorKind.SESSION_ERROR, message="Logout failed", details=str(exc)
            )

        logger.info("Session ended")
        return self._end_session(error)

    def _end_session(self, error: Optional[ServiceError] = None) -> Session:
        self._stop_idle_watch()
        self._gateway.set_identity(None)
        self.rate_limiter.reset()
        self._mark_inactive()
        clear_session_context()
        return self._reset(error)

    def _mark_active(self) -> None:
        if not self._counted_active:
            active_sessions.inc()
            self._counted_active = True

    def _mark_inactive(self) -> None:
        if self._counted_active:
            active_sessions.dec()
            self._counted_active = False

    # =========================================================================
    # Profile
    # =========================================================================

    async def create_profile(
        self,
        username: str,
        bio: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> Result[Profile, ServiceError]:
        """Create the caller's profile, moving NeedsProfile to Ready."""
        if not self._state.authenticated:
            return fail(ErrorKind.AUTH_REQUIRED, "You must be logged in to create a profile")

        check = validate_profile_fields(username, bio, avatar)
        if not check.ok:
            return check

        self.record_activity()
        self._transition(error=None)
        generation = self._generation
        created = await settle_remote_call(
            self._gateway.create_user_profile(username, bio, avatar),
            kind=ErrorKind.PROFILE_CREATION_FAILED,
            action="create profile",
            timeout=self._timeout,
            component="session",
        )
        ended = self._ended_since(generation)
        if ended is not None:
            return ended
        if not created.ok:
            self._transition(error=created.error)
            return created

        self._transition(phase=SessionPhase.READY, profile=created.value)
        logger.info(f"Profile @{created.value.username} created")
        return created

    async def update_profile(
        self,
        username: Optional[str] = None,
        bio: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> Result[Profile, ServiceError]:
        if not self._state.authenticated:
            return fail(ErrorKind.AUTH_REQUIRED, "You must be logged in to update a profile")
        if self._state.profile is None:
            return fail(ErrorKind.PROFILE_UPDATE_FAILED, "Create a profile before updating it")

        check = validate_profile_fields(username, bio, avatar)
        if not check.ok:
            return check

        self.record_activity()
        self._transition(error=None)
        generation = self._generation
        updated = await settle_remote_call(
            self._gateway.update_user_profile(username, bio, avatar),
            kind=ErrorKind.PROFILE_UPDATE_FAILED,
            action="update profile",
            timeout=self._timeout,
            component="session",
        )
        ended = self._ended_since(generation)
        if ended is not None:
            return ended
        if not updated.ok:
            self._transition(error=updated.error)
            return updated

        return Ok(self._transition(profile=updated.value).profile)

    async def check_username_availability(self, username: str) -> Result[bool, ServiceError]:
        check = validate_username(username)
        if not check.ok:
            return check
        return await settle_remote_call(
            self._gateway.check_username_availability(username),
            kind=ErrorKind.USERNAME_CHECK_FAILED,
            action="check username availability",
            timeout=self._timeout,
            component="session",
        )

    # =========================================================================
    # Idle Expiry
    # =========================================================================

    @property
    def idle_timeout(self) -> timedelta:
        return self._idle_timeout

    def record_activity(self) -> None:
        """Note user activity, postponing idle expiry."""
        self._last_activity = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self._last_activity

    async def check_idle(self) -> bool:
        """Log out if the session has been idle too long. Returns True if it did."""
        if not self._state.authenticated:
            return False
        if self.idle_seconds() < self._idle_timeout.total_seconds():
            return False
        logger.warning(
            f"Session expired after {int(self._idle_timeout.total_seconds() // 60)} minutes of inactivity"
        )
        await self.logout()
        return True

    def start_idle_watch(self, interval: Optional[float] = None) -> asyncio.Task[None]:
        """Run :meth:`check_idle` periodically on the running event loop."""
        self._stop_idle_watch()
        interval = interval or min(60.0, self._idle_timeout.total_seconds())
        self._idle_task = asyncio.create_task(self._idle_loop(interval))
        return self._idle_task

    async def _idle_loop(self, interval: float) -> None:
        while self._state.authenticated:
            remaining = self._idle_timeout.total_seconds() - self.idle_seconds()
            await asyncio.sleep(max(0.0, min(interval, remaining)))
            if await self.check_idle():
                return

    def _stop_idle_watch(self) -> None:
        task, self._idle_task = self._idle_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def close(self) -> None:
        """Stop background tasks."""
        self._stop_idle_watch()


__all__ = ["SessionManager", "SessionListener"]
