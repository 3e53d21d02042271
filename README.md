# wasmshim

Building blocks for a containerd task service that runs WebAssembly
workloads. The package tracks container instances and their lifecycle
and publishes task events. It also provides the OCI, stdio and
configuration helpers that such a service needs. It uses only the
standard library.

## Modules

- `wasmshim.local` holds `Local`, the task service. It handles these requests
  against instances of an `Instance` subclass that you supply:
  - `create(CreateTaskRequest)` loads `config.json` from the bundle and
    resolves the rootfs given by `root.path`, which must exist. It mounts any
    `Mount` entries with the `mount` command, publishes `TaskCreate` and runs
    the prestart hooks.
  - `start(StartRequest)` starts the instance and publishes `TaskStart`. A
    background thread then publishes `TaskExit` when the instance finishes.
  - `kill`, `delete`, `wait`, `state` and `connect` each take their own
    request dataclass and return the matching response dataclass.
  - `shutdown()` raises the `ExitSignal` once no tasks are left.
  - Requests that carry an `exec_id`, a checkpoint or a terminal are rejected.
  - `state` reports a `Status` of `CREATED`, `RUNNING` or `STOPPED`.
- `wasmshim.instance` defines `Instance`, the abstract base a runtime
  implements (`start`, `kill`, `delete`, `wait_timeout`; `wait` is derived).
  It also defines `InstanceConfig`, which holds the engine, namespace,
  containerd address, bundle path and stdio paths.
- `wasmshim.instance_data.InstanceData` wraps an instance. It records the pid
  and guards every operation with the state machine in
  `wasmshim.task_state.TaskState`.
- `wasmshim.task_state.TaskState` is an enum of the lifecycle states. Each
  transition method returns the new state. An invalid transition raises
  `FailedPreconditionError`.
- `wasmshim.sync.WaitableCell` is a write-once cell that threads can wait on,
  with or without a timeout. Setting it a second time raises
  `AlreadySetError`. `set_guard_with(f)` is a context manager: on leaving the
  block it sets the cell to `f()`, unless the cell already holds a value.
- `wasmshim.errors` holds the exception types (`NotFoundError`,
  `AlreadyExistsError`, `InvalidArgumentError`, `FailedPreconditionError`,
  `UnimplementedError`, `OciError`, `ContainerdError`, all subclasses of
  `ShimError`). `to_ttrpc_error` turns any exception into a `TtrpcError`
  carrying an `RpcStatus` with the matching `Code`.
- `wasmshim.events` holds the event records `TaskCreate`, `TaskStart`,
  `TaskExit`, `TaskDelete` and `TaskIO`, with a `topic` on each event. It also
  holds the abstract `EventSender` and `to_timestamp`, which converts a
  datetime into a `Timestamp`.
- `wasmshim.oci` holds `WasmLayer` and `parse_env`, which turns `NAME=VALUE`
  entries into a mapping. It also holds `setup_prestart_hooks`, which runs
  each prestart hook in turn. A hook gets `{ "pid": <pid> }` on stdin and only
  the environment it declares.
- `wasmshim.stdio` holds `StdioStream` and `Stdio`. They open the stdio paths
  of an `InstanceConfig`; an empty or missing path gives a stream with no
  descriptor. They can redirect the streams onto file descriptors 0, 1 and 2
  of the process. `Stdio.guard()` is a context manager that performs the
  redirect when its block exits.
- `wasmshim.instance_utils` holds three functions:
  - `determine_rootdir` takes the runtime root from a bundle's
    `options.json` when present, and falls back to the given root.
  - `get_instance_root` returns the state directory of a container.
  - `instance_exists` reports whether that directory exists.
- `wasmshim.otel` reads the exporter endpoint and protocol from the standard
  `OTEL_*` environment variables:
  - `traces_enabled`, `traces_endpoint_from_env` and
    `traces_protocol_from_env` read the individual settings.
  - `OtlpConfig.build_from_env` builds a config from them.
  - `OtlpConfig.get_trace_context` and `OtlpConfig.set_trace_context` carry
    a W3C trace context as JSON.

## Example

```python
from datetime import datetime, timezone

from wasmshim.events import EventSender
from wasmshim.instance import Instance
from wasmshim.local import (
    CreateTaskRequest, ExitSignal, KillRequest, Local, StartRequest, StateRequest,
)
from wasmshim.sync import WaitableCell


class PrintingSender(EventSender):
    def send(self, event):
        print(event.topic, event)


class MyInstance(Instance):
    def __init__(self, id, cfg=None):
        super().__init__(id, cfg)
        self._exit = WaitableCell()

    def start(self):
        return 1234

    def kill(self, signal):
        self._exit.set((137, datetime.now(timezone.utc)))

    def delete(self):
        pass

    def wait_timeout(self, timeout):
        return self._exit.wait_timeout(timeout)


service = Local(MyInstance, engine=None, events=PrintingSender(), exit=ExitSignal(),
                namespace="default", containerd_address="/run/containerd/containerd.sock")
# The bundle holds config.json with {"root": {"path": "rootfs"}} and a rootfs directory.
service.create(CreateTaskRequest(id="demo", bundle="/path/to/bundle"))
service.start(StartRequest(id="demo"))
print(service.state(StateRequest(id="demo")).status)   # Status.RUNNING
service.kill(KillRequest(id="demo", signal=9))
```

## What the package does not do

- There is no command-line program and no ttrpc server. `Local` is called
  directly from Python, and serving it to containerd is left to the caller.
- There is no client for containerd's content store.
- There is no task statistics request.
- `wasmshim.otel` reads the settings only. It does not export spans.
- No WebAssembly engine is included. Running a module is up to your
  `Instance` subclass.

## Running the tests

```
pip install -e ".[test]"
pytest
```