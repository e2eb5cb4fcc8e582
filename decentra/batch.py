"""Batch resolution of secondary entities.

Primary records (posts) reference secondary entities (author profiles,
the viewer's like status) by key. This module resolves all distinct keys
with bounded fan-out:

1. Deduplicate keys by their string form
2. Partition the distinct keys into fixed-size chunks
3. Issue the lookups of one chunk concurrently and settle them all
4. Merge chunk results into one map keyed by the string form of the key

A failed or empty individual lookup is logged and left out of the result
map. It never aborts sibling lookups or later chunks.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Optional, TypeVar

from decentra.config import settings
from decentra.errors import ErrorKind, settle_remote_call
from decentra.interfaces import IRemoteGateway
from decentra.logging import logger
from decentra.metrics import batch_lookups_total
from decentra.models import Profile
from decentra.result import Err, Ok
from decentra.telemetry import add_span_attributes, get_tracer, traced_span
from decentra.utils import chunk_list

K = TypeVar("K")
V = TypeVar("V")

tracer = get_tracer(__name__)


def _settle_lookup(key: str, outcome: Any, label: str) -> tuple[str, Any]:
    """Classify one lookup outcome as resolved, missing or failed."""
    if isinstance(outcome, Exception):
        logger.warning(f"Failed to resolve {label} {key}: {outcome}")
        return "failed", None
    if isinstance(outcome, Err):
        logger.warning(f"Failed to resolve {label} {key}: {outcome.error}")
        return "failed", None
    if isinstance(outcome, Ok):
        outcome = outcome.value
    if outcome is None:
        return "missing", None
    return "resolved", outcome


async def resolve_in_batches(
    keys: Optional[Iterable[K]],
    lookup: Callable[[K], Awaitable[Any]],
    *,
    batch_size: Optional[int] = None,
    label: str = "entity",
) -> dict[str, V]:
    """Resolve every distinct key through ``lookup``.

    Args:
        keys: Keys to resolve, duplicates allowed
        lookup: Coroutine function for one key. May return the entity,
            ``None``, an ``Ok``/``Err`` result, or raise.
        batch_size: Lookups issued concurrently per chunk
        label: Entity name used in logs

    Returns:
        Map from ``str(key)`` to resolved entity; unresolved keys are absent

    Raises:
        ValueError: If ``keys`` is None or ``batch_size`` is not positive
    """
    if keys is None:
        raise ValueError("keys cannot be None")

    batch_size = settings.batch_size if batch_size is None else batch_size
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    distinct: dict[str, K] = {}
    for key in keys:
        distinct.setdefault(str(key), key)

    resolved: dict[str, V] = {}
    if not distinct:
        return resolved

    chunks = chunk_list(list(distinct.items()), batch_size)

    with traced_span(
        tracer,
        "batch.resolve",
        {
            "batch.label": label,
            "batch.distinct_keys": len(distinct),
            "batch.chunks": len(chunks),
        },
    ) as span:
        for index, chunk in enumerate(chunks, start=1):
            logger.debug(f"Resolving {label} chunk {index}/{len(chunks)} ({len(chunk)} keys)")
            outcomes = await asyncio.gather(
                *(lookup(key) for _, key in chunk),
                return_exceptions=True,
            )
            for (key_str, _), outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome
                status, value = _settle_lookup(key_str, outcome, label)
                batch_lookups_total.labels(status=status).inc()
                if status == "resolved":
                    resolved[key_str] = value

        add_span_attributes(span, {"batch.resolved": len(resolved)})

    return resolved


async def resolve_profiles(
    gateway: IRemoteGateway,
    user_ids: Optional[Iterable[str]],
    *,
    timeout: Optional[float] = None,
    batch_size: Optional[int] = None,
) -> dict[str, Profile]:
    """Resolve author profiles keyed by principal."""
    timeout = timeout or settings.remote_call_timeout_seconds

    async def _lookup(user_id: str) -> Any:
        return await settle_remote_call(
            gateway.get_user_profile(user_id),
            kind=ErrorKind.PROFILE_FETCH_FAILED,
            action=f"fetch profile {user_id}",
            timeout=timeout,
            component="batch",
        )

    return await resolve_in_batches(user_ids, _lookup, batch_size=batch_size, label="profile")


async def resolve_like_statuses(
    gateway: IRemoteGateway,
    post_ids: Optional[Iterable[int]],
    *,
    timeout: Optional[float] = None,
    batch_size: Optional[int] = None,
) -> dict[str, bool]:
    """Resolve the viewer's like status keyed by ``str(post_id)``."""
    timeout = timeout or settings.remote_call_timeout_seconds

    async def _lookup(post_id: int) -> Any:
        return await settle_remote_call(
            gateway.is_post_liked(post_id),
            kind=ErrorKind.UNKNOWN_ERROR,
            action=f"check like status for post {post_id}",
            timeout=timeout,
            component="batch",
        )

    return await resolve_in_batches(post_ids, _lookup, batch_size=batch_size, label="like status")


__all__ = ["resolve_in_batches", "resolve_profiles", "resolve_like_statuses"]
