"""Tagged success/failure results.

Expected failure paths (authentication, validation, duplicate actions,
remote ``Err`` replies) travel as values rather than exceptions. Only
genuinely unexpected faults use Python's exception mechanism.

Example:
    >>> from decentra.result import Ok, Err, is_ok
    >>> result = Ok(42)
    >>> is_ok(result)
    True
    >>> Err("boom").unwrap_or(0)
    0
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeAlias, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed outcome carrying an error descriptor."""

    error: E

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise ValueError(f"Called unwrap() on Err: {self.error!r}")

    def unwrap_or(self, default: T) -> T:
        return default


Result: TypeAlias = Union[Ok[T], Err[E]]


def is_ok(result: "Result[Any, Any]") -> bool:
    """Return True when ``result`` is an :class:`Ok`."""
    return isinstance(result, Ok)


def is_err(result: "Result[Any, Any]") -> bool:
    """Return True when ``result`` is an :class:`Err`."""
    return isinstance(result, Err)


__all__ = ["Ok", "Err", "Result", "is_ok", "is_err"]
