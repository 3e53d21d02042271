"""Standard streams of a container and their redirection onto this process."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field

from .instance import InstanceConfig

STDIN_FILENO = 0
STDOUT_FILENO = 1
STDERR_FILENO = 2


class _OwnedFd:
    """A file descriptor that can be moved out once and is closed when dropped."""

    def __init__(self, fd: int | None = None) -> None:
        self._lock = threading.Lock()
        self._fd = fd

    @property
    def fd(self) -> int | None:
        return self._fd

    def take(self) -> _OwnedFd:
        with self._lock:
            fd, self._fd = self._fd, None
        return _OwnedFd(fd)

    def close(self) -> None:
        with self._lock:
            fd, self._fd = self._fd, None
        if fd is not None:
            with suppress(OSError):
                os.close(fd)

    def __del__(self) -> None:
        with suppress(Exception):
            self.close()


class StdioStream:
    """One stdio stream of a container, bound to the descriptor it replaces.

    Copies made with ``share`` hold the same descriptor; ``take`` moves it out.
    """

    def __init__(self, target_fd: int, owned: _OwnedFd | None = None) -> None:
        self.target_fd = target_fd
        self._owned = owned if owned is not None else _OwnedFd()

    @property
    def raw_fd(self) -> int | None:
        """The descriptor held by the stream, or None if it holds none."""
        return self._owned.fd

    def redirect(self) -> None:
        """Make ``target_fd`` refer to this stream; a stream without a descriptor does nothing."""
        fd = self._owned.fd
        if fd is None:
            return
        # Keep copies of the original stdio so those streams stay open.
        _remember_initial_stdio()
        os.dup2(fd, self.target_fd)

    def take(self) -> StdioStream:
        """Move the descriptor into a new stream, leaving this one empty."""
        return StdioStream(self.target_fd, self._owned.take())

    def share(self) -> StdioStream:
        """Return a stream sharing this stream's descriptor."""
        return StdioStream(self.target_fd, self._owned)

    def close(self) -> None:
        """Close the held descriptor, if any."""
        self._owned.close()

    @classmethod
    def try_from_path(cls, target_fd: int, path: str | os.PathLike[str]) -> StdioStream:
        """Open ``path`` for the stream.

        An empty or nonexistent path yields a stream without a descriptor,
        since containerd sends those for streams it did not set up.
        """
        if not os.fspath(path):
            return cls(target_fd)
        try:
            fd = os.open(path, os.O_RDWR)
        except FileNotFoundError:
            return cls(target_fd)
        return cls(target_fd, _OwnedFd(fd))

    @classmethod
    def try_from_std(cls, target_fd: int) -> StdioStream:
        """Duplicate the current ``target_fd`` of this process into a stream."""
        return cls(target_fd, _OwnedFd(os.dup(target_fd)))


def _stream(target_fd: int):
    return field(default_factory=lambda: StdioStream(target_fd))


@dataclass
class Stdio:
    """The stdin, stdout and stderr streams of a container."""

    stdin: StdioStream = _stream(STDIN_FILENO)
    stdout: StdioStream = _stream(STDOUT_FILENO)
    stderr: StdioStream = _stream(STDERR_FILENO)

    def redirect(self) -> None:
        """Redirect all three streams onto this process."""
        self.stdin.redirect()
        self.stdout.redirect()
        self.stderr.redirect()

    def take(self) -> Stdio:
        """Move all three descriptors into a new Stdio."""
        return Stdio(self.stdin.take(), self.stdout.take(), self.stderr.take())

    def close(self) -> None:
        """Close all held descriptors."""
        for stream in (self.stdin, self.stdout, self.stderr):
            stream.close()

    @classmethod
    def init_from_cfg(cls, cfg: InstanceConfig) -> Stdio:
        """Open the stdio paths named by an instance configuration."""
        return cls(
            StdioStream.try_from_path(STDIN_FILENO, cfg.stdin),
            StdioStream.try_from_path(STDOUT_FILENO, cfg.stdout),
            StdioStream.try_from_path(STDERR_FILENO, cfg.stderr),
        )

    @classmethod
    def init_from_std(cls) -> Stdio:
        """Duplicate this process's stdio; a stream that cannot be duplicated is left empty."""

        def dup(target_fd: int) -> StdioStream:
            try:
                return StdioStream.try_from_std(target_fd)
            except OSError:
                return StdioStream(target_fd)

        return cls(dup(STDIN_FILENO), dup(STDOUT_FILENO), dup(STDERR_FILENO))

    @contextmanager
    def guard(self) -> Iterator[Stdio]:
        """On leaving the block, redirect these streams back onto this process."""
        try:
            yield self
        finally:
            restored = self.take()
            with suppress(OSError):
                restored.redirect()
            restored.close()


_initial_lock = threading.Lock()
_initial_stdio: Stdio | None = None


def _remember_initial_stdio() -> None:
    global _initial_stdio
    with _initial_lock:
        if _initial_stdio is None:
            _initial_stdio = Stdio.init_from_std()