"""Error types raised by the shim and their mapping to ttrpc errors."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum


class Code(IntEnum):
    """Status codes carried by ttrpc responses."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


@dataclass(frozen=True)
class RpcStatus:
    """A status code together with its message."""

    code: Code
    message: str


class TtrpcError(Exception):
    """An error as returned over ttrpc.

    When ``status`` is set the error carries an RPC status; otherwise it is a
    plain error described only by its message.
    """

    def __init__(self, message: str, status: RpcStatus | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class ShimError(Exception):
    """Base class for errors raised by the shim."""

    _prefix = ""

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self._prefix}{self.detail}"


class NotFoundError(ShimError):
    """The requested item does not exist."""

    _prefix = "not found: "


class AlreadyExistsError(ShimError):
    """The requested item already exists."""

    _prefix = "already exists: "


class InvalidArgumentError(ShimError):
    """The supplied arguments, options or configuration are invalid."""

    _prefix = "invalid argument: "


class FailedPreconditionError(ShimError):
    """The system is not in the state the operation requires."""


class UnimplementedError(ShimError):
    """The operation is not supported."""


class OciError(ShimError):
    """The OCI spec could not be parsed or is invalid."""


class ContainerdError(ShimError):
    """An error returned by containerd."""


_STATUS_CODES: tuple[tuple[type[ShimError], Code], ...] = (
    (NotFoundError, Code.NOT_FOUND),
    (AlreadyExistsError, Code.ALREADY_EXISTS),
    (InvalidArgumentError, Code.INVALID_ARGUMENT),
    (FailedPreconditionError, Code.FAILED_PRECONDITION),
)


def _with_status(code: Code, message: str) -> TtrpcError:
    return TtrpcError(message, RpcStatus(code, message))


def to_ttrpc_error(error: BaseException) -> TtrpcError:
    """Convert any error into the ttrpc error containerd expects."""
    for cls, code in _STATUS_CODES:
        if isinstance(error, cls):
            return _with_status(code, error.detail)
    if isinstance(error, (UnimplementedError, OciError)):
        return _with_status(Code.UNKNOWN, str(error))
    if isinstance(error, (ShimError, OSError, json.JSONDecodeError)):
        return TtrpcError(str(error))
    return _with_status(Code.UNKNOWN, str(error))