"""OpenTelemetry configuration read from the environment, and trace-context propagation."""

from __future__ import annotations

import json
import os
import re
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum

from .errors import ShimError

OTEL_EXPORTER_OTLP_ENDPOINT = "OTEL_EXPORTER_OTLP_ENDPOINT"
OTEL_EXPORTER_OTLP_TRACES_ENDPOINT = "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT"
OTEL_EXPORTER_OTLP_PROTOCOL = "OTEL_EXPORTER_OTLP_PROTOCOL"
OTEL_EXPORTER_OTLP_TRACES_PROTOCOL = "OTEL_EXPORTER_OTLP_TRACES_PROTOCOL"
OTEL_SDK_DISABLED = "OTEL_SDK_DISABLED"

OTEL_EXPORTER_OTLP_PROTOCOL_HTTP_JSON = "http/json"
OTEL_EXPORTER_OTLP_PROTOCOL_HTTP_PROTOBUF = "http/protobuf"
OTEL_EXPORTER_OTLP_PROTOCOL_GRPC = "grpc"
OTEL_EXPORTER_OTLP_PROTOCOL_DEFAULT = OTEL_EXPORTER_OTLP_PROTOCOL_HTTP_PROTOBUF

_TRACEPARENT = "traceparent"
_TRACESTATE = "tracestate"
_TRACEPARENT_RE = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$")

_trace_context: ContextVar[dict[str, str]] = ContextVar("wasmshim_trace_context", default={})


class Protocol(Enum):
    """Transport used to export traces."""

    HTTP_BINARY = OTEL_EXPORTER_OTLP_PROTOCOL_HTTP_PROTOBUF
    HTTP_JSON = OTEL_EXPORTER_OTLP_PROTOCOL_HTTP_JSON
    GRPC = OTEL_EXPORTER_OTLP_PROTOCOL_GRPC


def _is_set(var: str) -> bool:
    return bool(os.environ.get(var))


def traces_enabled() -> bool:
    """Tell whether traces are to be exported.

    Traces are enabled when a traces endpoint or a general endpoint is set and
    not empty, unless ``OTEL_SDK_DISABLED`` is exactly ``true``.
    """
    endpoint_set = _is_set(OTEL_EXPORTER_OTLP_TRACES_ENDPOINT) or _is_set(OTEL_EXPORTER_OTLP_ENDPOINT)
    sdk_disabled = os.environ.get(OTEL_SDK_DISABLED) == "true"
    return endpoint_set and not sdk_disabled


def traces_endpoint_from_env() -> str:
    """Return the traces endpoint, falling back to the general endpoint."""
    for var in (OTEL_EXPORTER_OTLP_TRACES_ENDPOINT, OTEL_EXPORTER_OTLP_ENDPOINT):
        value = os.environ.get(var)
        if value is not None:
            return value
    raise ShimError(
        f"neither {OTEL_EXPORTER_OTLP_TRACES_ENDPOINT} nor {OTEL_EXPORTER_OTLP_ENDPOINT} is set"
    )


def traces_protocol_from_env() -> Protocol:
    """Return the traces protocol, falling back to the general protocol and then the default."""
    value = os.environ.get(
        OTEL_EXPORTER_OTLP_TRACES_PROTOCOL,
        os.environ.get(OTEL_EXPORTER_OTLP_PROTOCOL, OTEL_EXPORTER_OTLP_PROTOCOL_DEFAULT),
    )
    try:
        return Protocol(value)
    except ValueError:
        raise ShimError("Invalid OTEL_EXPORTER_OTLP_PROTOCOL value") from None


def _valid_traceparent(value: str) -> bool:
    match = _TRACEPARENT_RE.match(value)
    if match is None:
        return False
    version, trace_id, span_id, _flags = match.groups()
    return version != "ff" and trace_id != "0" * 32 and span_id != "0" * 16


@dataclass(frozen=True)
class OtlpConfig:
    """Where and how traces are exported."""

    traces_endpoint: str
    traces_protocol: Protocol

    @classmethod
    def build_from_env(cls) -> OtlpConfig:
        """Read the configuration from the environment."""
        return cls(traces_endpoint_from_env(), traces_protocol_from_env())

    @staticmethod
    def get_trace_context() -> str:
        """Return the current trace context as a JSON object of propagation headers."""
        return json.dumps(dict(_trace_context.get()), separators=(",", ":"))

    @staticmethod
    def set_trace_context(trace_context: str) -> None:
        """Make the trace context given as JSON the parent of the current context.

        Headers that do not describe a valid W3C trace context are dropped.
        """
        carrier = json.loads(trace_context)
        if not isinstance(carrier, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in carrier.items()
        ):
            raise ValueError("trace context must be a JSON object of strings")

        context: dict[str, str] = {}
        traceparent = carrier.get(_TRACEPARENT)
        if traceparent is not None and _valid_traceparent(traceparent.strip()):
            context[_TRACEPARENT] = traceparent.strip()
            tracestate = carrier.get(_TRACESTATE)
            if tracestate:
                context[_TRACESTATE] = tracestate
        _trace_context.set(context)