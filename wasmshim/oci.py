"""Generic helpers for working with OCI specs."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Iterable, Mapping
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from .errors import InvalidArgumentError, ShimError

log = logging.getLogger(__name__)


@dataclass
class WasmLayer:
    """A wasm layer of an image: its OCI descriptor and its content."""

    config: Any
    layer: bytes


def parse_env(envs: Iterable[str]) -> dict[str, str]:
    """Turn ``NAME=VALUE`` entries into a mapping; later entries win."""
    result: dict[str, str] = {}
    for entry in envs:
        key, _, value = entry.partition("=")
        result[key] = value
    return result


def _run_hook(hook: Mapping[str, Any]) -> None:
    path = hook["path"]
    args = list(hook.get("args") or [])
    # The first OCI argument is arg0, which may differ from the executable path.
    if args:
        arg0, *rest = args
        log.debug("run_hooks arg0: %r, args: %r", arg0, rest)
    else:
        arg0, rest = path, []

    env = parse_env(hook.get("env") or [])
    log.debug("run_hooks envs: %r", env)

    try:
        process = subprocess.Popen(
            [arg0, *rest],
            executable=path,
            env=env,
            stdin=subprocess.PIPE,
            bufsize=0,
        )
    except OSError as err:
        raise ShimError(f"Failed to execute hook: {err}") from err

    state = f'{{ "pid": {os.getpid()} }}'.encode()
    try:
        assert process.stdin is not None
        process.stdin.write(state)
    except BrokenPipeError:
        # The hook has already finished, successfully or not.
        pass
    except OSError:
        process.kill()
    finally:
        if process.stdin is not None:
            with suppress(OSError):
                process.stdin.close()
    process.wait()


def setup_prestart_hooks(hooks: Mapping[str, Any] | None) -> None:
    """Run the prestart hooks of an OCI runtime spec, one after another.

    Each hook is given the state ``{ "pid": <pid> }`` on its stdin and runs
    with only the environment the hook declares.
    """
    if hooks is None:
        return
    prestart = hooks.get("prestart")
    if prestart is None:
        raise InvalidArgumentError("prestart hooks are not set")
    for hook in prestart:
        _run_hook(hook)