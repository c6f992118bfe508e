"""Single-slot, last-write-wins handoff between the control cycle and the
classification bridge.

Both sides run on the same event loop, so a plain attribute swap is atomic
with respect to each other; values stored here are immutable dataclasses.
"""

import time
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class LatestValue(Generic[T]):
    """Holds only the most recent value written to it."""

    def __init__(self) -> None:
        self._value: Optional[T] = None
        self._written_at: Optional[float] = None
        self._version = 0

    def put(self, value: T) -> None:
        self._value = value
        self._written_at = time.monotonic()
        self._version += 1

    def get(self, max_age_seconds: Optional[float] = None) -> Optional[T]:
        """Return the latest value, or None if empty or older than max_age_seconds."""
        if self._value is None:
            return None
        if max_age_seconds is not None and self.age_seconds > max_age_seconds:
            return None
        return self._value

    def clear(self) -> None:
        self._value = None
        self._written_at = None

    @property
    def age_seconds(self) -> float:
        if self._written_at is None:
            return float("inf")
        return time.monotonic() - self._written_at

    @property
    def version(self) -> int:
        """Incremented on every put; lets a reader tell a fresh value from a repeat."""
        return self._version
