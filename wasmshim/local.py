"""The task service of the shim: it defers every task operation to an Instance."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any

from . import oci
from .errors import (
    AlreadyExistsError,
    InvalidArgumentError,
    NotFoundError,
    ShimError,
    UnimplementedError,
)
from .events import (
    EventSender,
    TaskCreate,
    TaskDelete,
    TaskExit,
    TaskIO,
    TaskStart,
    Timestamp,
    to_timestamp,
)
from .instance import Instance, InstanceConfig
from .instance_data import InstanceData

log = logging.getLogger(__name__)


class Status(IntEnum):
    """Status of a task as reported to containerd."""

    UNKNOWN = 0
    CREATED = 1
    RUNNING = 2
    STOPPED = 3
    PAUSED = 4
    PAUSING = 5


class ExitSignal:
    """A one-shot signal telling the shim to exit."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def signal(self) -> None:
        """Raise the signal, waking every waiter."""
        self._event.set()

    def wait(self) -> None:
        """Block until the signal is raised."""
        self._event.wait()

    @property
    def is_set(self) -> bool:
        """Whether the signal has been raised."""
        return self._event.is_set()


@dataclass
class Mount:
    """A mount that makes up part of a task's rootfs."""

    type: str = ""
    source: str = ""
    target: str = ""
    options: list[str] = field(default_factory=list)


@dataclass
class CreateTaskRequest:
    id: str
    bundle: str = ""
    rootfs: list[Mount] = field(default_factory=list)
    terminal: bool = False
    stdin: str = ""
    stdout: str = ""
    stderr: str = ""
    checkpoint: str = ""
    parent_checkpoint: str = ""


@dataclass
class CreateTaskResponse:
    pid: int = 0


@dataclass
class StartRequest:
    id: str
    exec_id: str = ""


@dataclass
class StartResponse:
    pid: int = 0


@dataclass
class KillRequest:
    id: str
    exec_id: str = ""
    signal: int = 0
    all: bool = False


@dataclass
class DeleteRequest:
    id: str
    exec_id: str = ""


@dataclass
class DeleteResponse:
    pid: int = 0
    exit_status: int = 0
    exited_at: Timestamp | None = None


@dataclass
class WaitRequest:
    id: str
    exec_id: str = ""


@dataclass
class WaitResponse:
    exit_status: int = 0
    exited_at: Timestamp | None = None


@dataclass
class StateRequest:
    id: str
    exec_id: str = ""


@dataclass
class StateResponse:
    bundle: str = ""
    stdin: str = ""
    stdout: str = ""
    stderr: str = ""
    pid: int = 0
    status: Status = Status.UNKNOWN
    exit_status: int = 0
    exited_at: Timestamp | None = None


@dataclass
class ConnectRequest:
    id: str


@dataclass
class ConnectResponse:
    shim_pid: int = 0
    task_pid: int = 0
    version: str = ""


def _load_spec(bundle: str) -> dict[str, Any]:
    try:
        with open(Path(bundle) / "config.json", encoding="utf-8") as file:
            spec = json.load(file)
    except (OSError, ValueError) as err:
        raise InvalidArgumentError(f"could not load runtime spec: {err}") from err
    if not isinstance(spec, dict):
        raise InvalidArgumentError("could not load runtime spec: not a JSON object")
    return spec


def _canonical_rootfs(spec: dict[str, Any], bundle: str) -> Path:
    root = spec.get("root")
    if not isinstance(root, dict) or not isinstance(root.get("path"), str):
        raise InvalidArgumentError("rootfs is not set in runtime spec")
    path = Path(root["path"])
    if not path.is_absolute():
        path = Path(bundle) / path
    try:
        resolved = path.resolve(strict=True)
    except OSError as err:
        raise InvalidArgumentError(f"could not canonicalize rootfs: {err}") from err
    root["path"] = str(resolved)
    return resolved


def _mount(mount: Mount, target: Path) -> None:
    command = ["mount"]
    if mount.type:
        command += ["-t", mount.type]
    if mount.options:
        command += ["-o", ",".join(mount.options)]
    command += [mount.source or "none", str(target)]
    try:
        subprocess.run(command, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError) as err:
        raise ShimError(f"failed to mount rootfs component {mount.source!r}: {err}") from err


def _reject_exec(exec_id: str) -> None:
    if exec_id:
        raise InvalidArgumentError("exec is not supported")


class Local:
    """Task service for a containerd shim, backed by instances of one type."""

    def __init__(
        self,
        instance_type: type[Instance],
        engine: Any,
        events: EventSender,
        exit: ExitSignal,
        namespace: str,
        containerd_address: str,
    ) -> None:
        self.instance_type = instance_type
        self.engine = engine
        self.events = events
        self.exit = exit
        self.namespace = namespace
        self.containerd_address = containerd_address
        self._instances: dict[str, InstanceData] = {}
        self._lock = threading.RLock()

    def get_instance(self, id: str) -> InstanceData:
        """Return the instance with ``id``; raise NotFoundError if there is none."""
        with self._lock:
            try:
                return self._instances[id]
            except KeyError:
                raise NotFoundError(id) from None

    def _has_instance(self, id: str) -> bool:
        with self._lock:
            return id in self._instances

    def _is_empty(self) -> bool:
        with self._lock:
            return not self._instances

    def _instance_config(self) -> InstanceConfig:
        return InstanceConfig(self.engine, self.namespace, self.containerd_address)

    def create(self, req: CreateTaskRequest) -> CreateTaskResponse:
        """Create a task from the bundle and run its prestart hooks."""
        log.debug("create: %r", req)
        if req.checkpoint or req.parent_checkpoint:
            raise UnimplementedError("checkpoint is not supported")
        if req.terminal:
            raise InvalidArgumentError("terminal is not supported")
        if self._has_instance(req.id):
            raise AlreadyExistsError(req.id)

        spec = _load_spec(req.bundle)
        rootfs = _canonical_rootfs(spec, req.bundle)
        try:
            rootfs.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass
        for mount in req.rootfs:
            _mount(mount, rootfs)

        cfg = self._instance_config()
        cfg.bundle = req.bundle
        cfg.stdin = req.stdin
        cfg.stdout = req.stdout
        cfg.stderr = req.stderr

        instance = InstanceData(self.instance_type, req.id, cfg)
        with self._lock:
            self._instances[req.id] = instance

        self.events.send(
            TaskCreate(
                container_id=req.id,
                bundle=req.bundle,
                rootfs=list(req.rootfs),
                io=TaskIO(stdin=req.stdin, stdout=req.stdout, stderr=req.stderr),
            )
        )
        log.debug("create done")

        # The spec requires prestart hooks to run as part of create.
        oci.setup_prestart_hooks(spec.get("hooks"))
        return CreateTaskResponse(pid=os.getpid())

    def start(self, req: StartRequest) -> StartResponse:
        """Start a task and publish its exit once it finishes."""
        log.debug("start: %r", req)
        if req.exec_id:
            raise UnimplementedError("exec is not supported")

        instance = self.get_instance(req.id)
        pid = instance.start()
        self.events.send(TaskStart(container_id=req.id, pid=pid))

        task_id = req.id
        events = self.events

        def wait_exit() -> None:
            exit_code, when = instance.wait()
            events.send(
                TaskExit(
                    container_id=task_id,
                    id=task_id,
                    pid=pid,
                    exit_status=exit_code,
                    exited_at=to_timestamp(when),
                )
            )

        try:
            threading.Thread(target=wait_exit, name=f"{task_id}-wait", daemon=True).start()
        except RuntimeError as err:
            raise ShimError(f"could not spawn thread to wait exit: {err}") from err

        log.debug("started: %r", req)
        return StartResponse(pid=pid)

    def kill(self, req: KillRequest) -> None:
        """Send a signal to a task."""
        log.debug("kill: %r", req)
        _reject_exec(req.exec_id)
        self.get_instance(req.id).kill(req.signal)

    def delete(self, req: DeleteRequest) -> DeleteResponse:
        """Delete a created or exited task."""
        log.debug("delete: %r", req)
        _reject_exec(req.exec_id)

        instance = self.get_instance(req.id)
        instance.delete()

        pid = instance.pid or 0
        result = instance.wait_timeout(0)
        exit_code = result[0] if result is not None else 0
        exited_at = to_timestamp(result[1]) if result is not None else None

        with self._lock:
            self._instances.pop(req.id, None)

        self.events.send(
            TaskDelete(container_id=req.id, pid=pid, exit_status=exit_code, exited_at=exited_at)
        )
        return DeleteResponse(pid=pid, exit_status=exit_code, exited_at=exited_at)

    def wait(self, req: WaitRequest) -> WaitResponse:
        """Block until a task exits."""
        log.debug("wait: %r", req)
        _reject_exec(req.exec_id)
        exit_code, when = self.get_instance(req.id).wait()
        log.debug("wait finishes")
        return WaitResponse(exit_status=exit_code, exited_at=to_timestamp(when))

    def state(self, req: StateRequest) -> StateResponse:
        """Report the state of a task."""
        log.debug("state: %r", req)
        _reject_exec(req.exec_id)

        instance = self.get_instance(req.id)
        pid = instance.pid
        result = instance.wait_timeout(0)

        if pid is None:
            status = Status.CREATED
        elif result is None:
            status = Status.RUNNING
        else:
            status = Status.STOPPED

        cfg = instance.config
        return StateResponse(
            bundle=cfg.bundle,
            stdin=cfg.stdin,
            stdout=cfg.stdout,
            stderr=cfg.stderr,
            pid=pid or 0,
            status=status,
            exit_status=result[0] if result is not None else 0,
            exited_at=to_timestamp(result[1]) if result is not None else None,
        )

    def connect(self, req: ConnectRequest) -> ConnectResponse:
        """Return the pids of the shim and of a task."""
        log.debug("connect: %r", req)
        instance = self.get_instance(req.id)
        return ConnectResponse(shim_pid=os.getpid(), task_pid=instance.pid or 0)

    def shutdown(self) -> None:
        """Signal the shim to exit once no tasks are left."""
        log.debug("shutdown")
        if self._is_empty():
            self.exit.signal()