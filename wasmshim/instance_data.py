"""An instance together with its configuration, pid and lifecycle state."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime

from .instance import Instance, InstanceConfig
from .task_state import TaskState


class InstanceData:
    """Wraps an instance and guards its operations with the task state machine."""

    def __init__(
        self,
        instance_type: Callable[[str, InstanceConfig | None], Instance],
        id: str,
        cfg: InstanceConfig,
    ) -> None:
        self.instance = instance_type(id, cfg)
        self.config = cfg
        self._pid: int | None = None
        self._state = TaskState.CREATED
        self._lock = threading.Lock()

    @property
    def pid(self) -> int | None:
        """The id returned when the instance was started, or None before that."""
        return self._pid

    @property
    def state(self) -> TaskState:
        """The current lifecycle state."""
        with self._lock:
            return self._state

    def start(self) -> int:
        """Start the instance and return its pid."""
        with self._lock:
            self._state = self._state.start()
            try:
                pid = self.instance.start()
            except BaseException:
                self._state = self._state.stop()
                raise
            if self._pid is None:
                self._pid = pid
            self._state = self._state.started()
            return pid

    def kill(self, signal: int) -> None:
        """Send a signal to a started instance."""
        with self._lock:
            self._state = self._state.kill()
            self.instance.kill(signal)

    def delete(self) -> None:
        """Delete a created or exited instance; on failure the delete may be retried."""
        with self._lock:
            self._state = self._state.delete()
            try:
                self.instance.delete()
            except BaseException:
                self._state = self._state.stop()
                raise

    def wait(self) -> tuple[int, datetime]:
        """Block until the instance exits and return its exit code and time."""
        result = self.instance.wait()
        with self._lock:
            self._state = TaskState.EXITED
        return result

    def wait_timeout(self, timeout: float | None) -> tuple[int, datetime] | None:
        """Wait up to ``timeout`` seconds for the instance to exit."""
        result = self.instance.wait_timeout(timeout)
        if result is not None:
            with self._lock:
                self._state = TaskState.EXITED
        return result