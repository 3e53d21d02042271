"""Abstractions for running and managing a wasm/wasi instance."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class InstanceConfig:
    """Options for creating an instance.

    The stdio fields hold paths to named pipes; an empty string means the
    stream was not set up.
    """

    engine: Any
    namespace: str
    containerd_address: str
    stdin: str = ""
    stdout: str = ""
    stderr: str = ""
    bundle: str = ""


class Instance(ABC):
    """One or more WASI modules run as a container task."""

    def __init__(self, id: str, cfg: InstanceConfig | None = None) -> None:
        self.id = id
        self.config = cfg

    @abstractmethod
    def start(self) -> int:
        """Start the instance and return a unique id for it, such as a pid."""

    @abstractmethod
    def kill(self, signal: int) -> None:
        """Send a signal to the instance."""

    @abstractmethod
    def delete(self) -> None:
        """Release everything held for the instance after it has exited."""

    @abstractmethod
    def wait_timeout(self, timeout: float | None) -> tuple[int, datetime] | None:
        """Wait up to ``timeout`` seconds for the exit code and exit time.

        Return None if the instance has not finished in time.
        """

    def wait(self) -> tuple[int, datetime]:
        """Block until the instance finishes; return its exit code and exit time."""
        result = self.wait_timeout(None)
        if result is None:
            raise RuntimeError(f"instance {self.id} returned from wait without an exit status")
        return result