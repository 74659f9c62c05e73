"""Explicit states for asynchronously loaded resources.

A resource (vault record, spending snapshot, sync status) is always exactly
one of ``NotStarted``, ``Pending``, ``Ready`` or ``Failed``. Consumers branch
on the variant instead of re-checking optional fields.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class NotStarted:
    """Nothing has been requested yet."""

    @property
    def is_ready(self) -> bool:
        return False


@dataclass(frozen=True)
class Pending:
    """A load is in flight."""

    @property
    def is_ready(self) -> bool:
        return False


@dataclass(frozen=True)
class Ready(Generic[T]):
    """The resource loaded successfully."""

    value: T

    @property
    def is_ready(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    """The last load failed."""

    error: BaseException

    @property
    def is_ready(self) -> bool:
        return False


Resource = Union[NotStarted, Pending, Ready[T], Failed]

NOT_STARTED = NotStarted()
PENDING = Pending()


def value_or_none(resource: "Resource") -> Optional[object]:
    """Return the loaded value, or None for any other variant."""
    if isinstance(resource, Ready):
        return resource.value
    return None
