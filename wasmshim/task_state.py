"""Lifecycle states of a task and the transitions allowed between them."""

from __future__ import annotations

from enum import Enum

from .errors import FailedPreconditionError


def _transition_error(source: TaskState, target: str) -> FailedPreconditionError:
    return FailedPreconditionError(f"invalid state transition: {source.value} => {target}")


class TaskState(Enum):
    """State of a task; each transition returns the new state or raises."""

    CREATED = "Created"
    STARTING = "Starting"
    STARTED = "Started"
    EXITED = "Exited"
    DELETING = "Deleting"

    def start(self) -> TaskState:
        """Begin starting a created task."""
        if self is TaskState.CREATED:
            return TaskState.STARTING
        raise _transition_error(self, TaskState.STARTING.value)

    def kill(self) -> TaskState:
        """Check that a signal may be sent; only a started task accepts one."""
        if self is TaskState.STARTED:
            return TaskState.STARTED
        raise _transition_error(self, '"Killing"')

    def delete(self) -> TaskState:
        """Begin deleting a created or exited task."""
        if self in (TaskState.CREATED, TaskState.EXITED):
            return TaskState.DELETING
        raise _transition_error(self, TaskState.DELETING.value)

    def started(self) -> TaskState:
        """Mark a starting task as started."""
        if self is TaskState.STARTING:
            return TaskState.STARTED
        raise _transition_error(self, TaskState.STARTED.value)

    def stop(self) -> TaskState:
        """Mark a task as exited; a failed delete may also fall back here to allow a retry."""
        if self in (TaskState.STARTED, TaskState.STARTING, TaskState.DELETING):
            return TaskState.EXITED
        raise _transition_error(self, TaskState.EXITED.value)