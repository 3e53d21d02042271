"""Helpers for locating the state directories of container instances."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .errors import ShimError

log = logging.getLogger(__name__)

_OPTIONS_FILE = "options.json"


def _construct_instance_root(root_path: str | os.PathLike[str], container_id: str) -> Path:
    try:
        resolved = Path(root_path).resolve(strict=True)
    except OSError as err:
        raise ShimError(
            f"failed to canonicalize {root_path} for container {container_id}: {err}"
        ) from err
    return resolved / container_id


def get_instance_root(root_path: str | os.PathLike[str], instance_id: str) -> Path:
    """Return the directory holding the state of ``instance_id``.

    Raise ShimError if the root cannot be resolved or the instance does not exist.
    """
    instance_root = _construct_instance_root(root_path, instance_id)
    if not instance_root.exists():
        raise ShimError(f"container {instance_id} does not exist.")
    return instance_root


def instance_exists(root_path: str | os.PathLike[str], container_id: str) -> bool:
    """Tell whether the state directory of ``container_id`` exists."""
    return _construct_instance_root(root_path, container_id).exists()


def determine_rootdir(
    bundle: str | os.PathLike[str],
    namespace: str,
    rootdir: str | os.PathLike[str],
) -> Path:
    """Return the runtime root for ``namespace``.

    The root comes from ``options.json`` in the bundle when it names one, and
    from ``rootdir`` otherwise.
    """
    try:
        with open(Path(bundle) / _OPTIONS_FILE, encoding="utf-8") as file:
            options = json.load(file)
    except FileNotFoundError:
        return Path(rootdir) / namespace

    if not isinstance(options, dict):
        raise ValueError(f"{_OPTIONS_FILE} must hold a JSON object")
    root = options.get("root")
    if root is not None and not isinstance(root, str):
        raise ValueError(f"'root' in {_OPTIONS_FILE} must be a string")

    path = Path(root if root is not None else rootdir) / namespace
    log.info("container runtime root path is %s", path)
    return path