"""Optimistic mutation protocol for toggle actions.

A toggle (like/unlike, follow/unfollow) flips its local state and notifies
listeners immediately, then issues the remote call and reconciles:

    Idle -> Pending -> Committed   (server accepted; optimistic value stands)
                    -> RolledBack  (server refused; previous value restored)

and always returns to Idle once settled.

Reconciliation rules:
    - Success keeps the optimistic value; no re-fetch is needed.
    - A duplicate-action refusal ("already liked", "not following", ...)
      resynchronizes to the last server-confirmed value supplied by the
      caller, silently.
    - Any other refusal, a timeout or a transport fault restores the
      pre-click value and surfaces the error.

A target can have only one mutation in flight. A second toggle on the same
target while the first is pending fails with ``MUTATION_IN_FLIGHT`` and
leaves state untouched.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from decentra.errors import ErrorKind, ServiceError, fail
from decentra.logging import logger
from decentra.metrics import mutations_in_flight, optimistic_mutations_total
from decentra.result import Ok, Result
from decentra.service import SocialService


class MutationState(StrEnum):
    """Per-toggle mutation lifecycle."""

    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True, slots=True)
class ToggleState:
    """Locally held toggle value and its counter."""

    active: bool
    count: int


StateListener = Callable[[ToggleState], None]
ErrorListener = Callable[[ServiceError], None]


class InFlightRegistry:
    """Set of target keys with a mutation awaiting the server.

    Share one registry across every toggle of a session so that two views
    of the same post or profile cannot race each other.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def acquire(self, key: str) -> bool:
        """Mark ``key`` in flight. Returns False if it already was."""
        if key in self._keys:
            return False
        self._keys.add(key)
        mutations_in_flight.inc()
        return True

    def release(self, key: str) -> None:
        if key in self._keys:
            self._keys.discard(key)
            mutations_in_flight.dec()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class OptimisticToggle:
    """Base class for a two-state action with an associated counter.

    Subclasses provide the target key, the remote commit and the action
    names used in metrics and messages.

    Args:
        service: Guarded social service used for the remote call
        active: Server-confirmed initial value
        count: Server-confirmed initial counter
        actor_id: Principal of the acting user, ``None`` when logged out
        in_flight: Registry shared with sibling toggles
        on_change: Listener called with every new local state
        on_error: Listener called with surfaced (non-duplicate) errors
    """

    action_on = "on"
    action_off = "off"
    login_message = "Please login to continue"

    def __init__(
        self,
        service: SocialService,
        *,
        active: bool,
        count: int = 0,
        actor_id: Optional[str] = None,
        in_flight: Optional[InFlightRegistry] = None,
        on_change: Optional[StateListener] = None,
        on_error: Optional[ErrorListener] = None,
    ) -> None:
        self._service = service
        self._state = ToggleState(active=active, count=count)
        self._original = self._state
        self._actor_id = actor_id
        self._in_flight = in_flight if in_flight is not None else InFlightRegistry()
        self._listeners: list[StateListener] = [on_change] if on_change else []
        self._error_listeners: list[ErrorListener] = [on_error] if on_error else []
        self._mutation_state = MutationState.IDLE
        self.last_settlement: Optional[MutationState] = None

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    @property
    def key(self) -> str:
        raise NotImplementedError

    async def _commit(self, active: bool) -> Result[None, ServiceError]:
        raise NotImplementedError

    def _is_suppressed(self) -> bool:
        return False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ToggleState:
        return self._state

    @property
    def original(self) -> ToggleState:
        """Last server-confirmed state."""
        return self._original

    @property
    def mutation_state(self) -> MutationState:
        return self._mutation_state

    @property
    def is_pending(self) -> bool:
        return self._mutation_state == MutationState.PENDING

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def subscribe_errors(self, listener: ErrorListener) -> Callable[[], None]:
        self._error_listeners.append(listener)
        return lambda: self._error_listeners.remove(listener)

    def set_actor(self, actor_id: Optional[str]) -> None:
        self._actor_id = actor_id

    def sync(self, active: bool, count: Optional[int] = None) -> None:
        """Adopt a new server-confirmed value (for example after a re-fetch)."""
        confirmed = ToggleState(
            active=active, count=self._original.count if count is None else count
        )
        self._original = confirmed
        if not self.is_pending:
            self._set_state(confirmed)

    def _set_state(self, state: ToggleState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _flip(self, state: ToggleState) -> ToggleState:
        active = not state.active
        count = state.count + 1 if active else max(0, state.count - 1)
        return ToggleState(active=active, count=count)

    def _settle(self, outcome: MutationState, metric_outcome: str, action: str) -> None:
        self.last_settlement = outcome
        self._mutation_state = MutationState.IDLE
        optimistic_mutations_total.labels(action=action, outcome=metric_outcome).inc()

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    async def toggle(self) -> Result[ToggleState, ServiceError]:
        """Flip the value optimistically and reconcile with the server.

        Returns:
            ``Ok(final_state)`` on commit, on silent duplicate-action resync
            and on suppressed self-targeting; ``Err`` otherwise
        """
        intended = self.action_off if self._state.active else self.action_on

        if self._actor_id is None:
            optimistic_mutations_total.labels(action=intended, outcome="rejected").inc()
            return fail(ErrorKind.AUTH_REQUIRED, self.login_message)

        if self._is_suppressed():
            return Ok(self._state)

        if not self._in_flight.acquire(self.key):
            optimistic_mutations_total.labels(action=intended, outcome="rejected").inc()
            return fail(
                ErrorKind.MUTATION_IN_FLIGHT,
                f"A previous {intended} on this item is still pending",
            )

        previous = self._state
        optimistic = self._flip(previous)
        self._mutation_state = MutationState.PENDING
        self._set_state(optimistic)

        try:
            outcome = await self._commit(optimistic.active)
        except Exception:
            self._set_state(previous)
            self._settle(MutationState.ROLLED_BACK, "rolled_back", intended)
            raise
        finally:
            self._in_flight.release(self.key)

        if outcome.ok:
            self._original = optimistic
            self._settle(MutationState.COMMITTED, "committed", intended)
            return Ok(optimistic)

        error = outcome.error
        if error.is_duplicate_action:
            logger.info(f"{intended} on {self.key} was already in effect; resyncing")
            self._set_state(self._original)
            self._settle(MutationState.ROLLED_BACK, "resynced", intended)
            return Ok(self._original)

        logger.warning(f"{intended} on {self.key} rolled back: {error}")
        self._set_state(previous)
        self._settle(MutationState.ROLLED_BACK, "rolled_back", intended)
        for listener in list(self._error_listeners):
            listener(error)
        return outcome


class LikeToggle(OptimisticToggle):
    """Like/unlike a post with an optimistic like counter."""

    action_on = "like"
    action_off = "unlike"
    login_message = "Please login to like posts"

    def __init__(
        self,
        service: SocialService,
        post_id: int,
        *,
        is_liked: bool,
        like_count: int = 0,
        **kwargs,
    ) -> None:
        super().__init__(service, active=is_liked, count=like_count, **kwargs)
        self.post_id = post_id

    @property
    def key(self) -> str:
        return f"like:{self.post_id}"

    @property
    def is_liked(self) -> bool:
        return self._state.active

    @property
    def like_count(self) -> int:
        return self._state.count

    async def _commit(self, active: bool) -> Result[None, ServiceError]:
        if active:
            return await self._service.like_post(self.post_id)
        return await self._service.unlike_post(self.post_id)


class FollowToggle(OptimisticToggle):
    """Follow/unfollow a user with an optimistic follower counter.

    Following yourself is silently suppressed; :attr:`visible` is False for
    the actor's own profile.
    """

    action_on = "follow"
    action_off = "unfollow"
    login_message = "Please log in to follow users"

    def __init__(
        self,
        service: SocialService,
        target_id: str,
        *,
        is_following: bool = False,
        follower_count: int = 0,
        **kwargs,
    ) -> None:
        super().__init__(service, active=is_following, count=follower_count, **kwargs)
        self.target_id = target_id

    @property
    def key(self) -> str:
        return f"follow:{self.target_id}"

    @property
    def is_following(self) -> bool:
        return self._state.active

    @property
    def visible(self) -> bool:
        return self._actor_id is not None and not self._is_suppressed()

    def _is_suppressed(self) -> bool:
        return self._actor_id == self.target_id

    async def _commit(self, active: bool) -> Result[None, ServiceError]:
        if active:
            return await self._service.follow_user(self.target_id)
        return await self._service.unfollow_user(self.target_id)

    async def refresh(self) -> Result[bool, ServiceError]:
        """Re-read the follow status from the server and adopt it."""
        if self._actor_id is None or self._is_suppressed():
            return Ok(self._state.active)
        outcome = await self._service.is_following(self._actor_id, self.target_id)
        if outcome.ok:
            self.sync(outcome.value)
        return outcome


__all__ = [
    "MutationState",
    "ToggleState",
    "InFlightRegistry",
    "OptimisticToggle",
    "LikeToggle",
    "FollowToggle",
]
