"""A cell that can be waited on until a value is set."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager, suppress
from datetime import timedelta
from typing import Any

_UNSET = object()


class AlreadySetError(Exception):
    """Raised when a value is set on a cell that already holds one."""

    def __init__(self, value: Any) -> None:
        super().__init__("cell already holds a value")
        self.value = value


class WaitableCell:
    """A write-once cell; readers can wait, with a timeout, for its value.

    Copies of the reference share the same cell, so handing it to another
    thread is all that is needed to share it.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._value: Any = _UNSET

    def _is_set(self) -> bool:
        return self._value is not _UNSET

    def set(self, value: Any) -> None:
        """Store ``value``; raise AlreadySetError if a value is already held."""
        with self._cond:
            if self._is_set():
                self._cond.notify_all()
                raise AlreadySetError(value)
            self._value = value
            self._cond.notify_all()

    @contextmanager
    def set_guard_with(self, f: Callable[[], Any]) -> Iterator[WaitableCell]:
        """On leaving the block, set the cell to ``f()`` unless it already holds a value.

        ``f`` is always called, also when the block raises.
        """
        try:
            yield self
        finally:
            value = f()
            with suppress(AlreadySetError):
                self.set(value)

    def wait(self) -> Any:
        """Block until a value is set and return it."""
        with self._cond:
            self._cond.wait_for(self._is_set)
            return self._value

    def wait_timeout(self, timeout: float | timedelta | None) -> Any:
        """Wait up to ``timeout`` seconds for a value; return None if none arrives.

        A timeout of None waits forever; zero does not wait at all.
        """
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        with self._cond:
            if timeout is None:
                self._cond.wait_for(self._is_set)
            elif timeout > 0:
                self._cond.wait_for(self._is_set, timeout)
            return self._value if self._is_set() else None