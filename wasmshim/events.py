"""Task events published to containerd and the senders that carry them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Timestamp:
    """A point in time as whole seconds since the epoch plus nanoseconds."""

    seconds: int
    nanos: int


def to_timestamp(dt: datetime) -> Timestamp:
    """Convert a datetime into a Timestamp; a naive datetime is taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return Timestamp(
        seconds=delta.days * 86400 + delta.seconds,
        nanos=delta.microseconds * 1000,
    )


@dataclass
class TaskIO:
    """The stdio paths of a task."""

    stdin: str = ""
    stdout: str = ""
    stderr: str = ""
    terminal: bool = False


@dataclass
class TaskCreate:
    """Published when a task has been created."""

    topic: ClassVar[str] = "/tasks/create"

    container_id: str
    bundle: str = ""
    rootfs: list[Any] = field(default_factory=list)
    io: TaskIO | None = None
    checkpoint: str = ""
    pid: int = 0


@dataclass
class TaskStart:
    """Published when a task has been started."""

    topic: ClassVar[str] = "/tasks/start"

    container_id: str
    pid: int = 0


@dataclass
class TaskExit:
    """Published when a task has exited."""

    topic: ClassVar[str] = "/tasks/exit"

    container_id: str
    id: str = ""
    pid: int = 0
    exit_status: int = 0
    exited_at: Timestamp | None = None


@dataclass
class TaskDelete:
    """Published when a task has been deleted."""

    topic: ClassVar[str] = "/tasks/delete"

    container_id: str
    pid: int = 0
    exit_status: int = 0
    exited_at: Timestamp | None = None
    id: str = ""


class EventSender(ABC):
    """Something that delivers task events; sending must never raise."""

    @abstractmethod
    def send(self, event: Any) -> None:
        """Deliver ``event``; its topic is ``event.topic``."""