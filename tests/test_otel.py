import pytest

from wasmshim.errors import ShimError
from wasmshim.otel import (
    OTEL_EXPORTER_OTLP_ENDPOINT,
    OTEL_EXPORTER_OTLP_PROTOCOL,
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT,
    OTEL_EXPORTER_OTLP_TRACES_PROTOCOL,
    OTEL_SDK_DISABLED,
    OtlpConfig,
    Protocol,
    traces_enabled,
    traces_endpoint_from_env,
    traces_protocol_from_env,
)

ALL_VARS = (
    OTEL_EXPORTER_OTLP_ENDPOINT,
    OTEL_EXPORTER_OTLP_PROTOCOL,
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT,
    OTEL_EXPORTER_OTLP_TRACES_PROTOCOL,
    OTEL_SDK_DISABLED,
)

TRACEPARENT = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ALL_VARS:
        monkeypatch.delenv(var, raising=False)
    OtlpConfig.set_trace_context("{}")
    yield monkeypatch
    OtlpConfig.set_trace_context("{}")


def apply(monkeypatch, values):
    for var, value in values.items():
        if value is None:
            monkeypatch.delenv(var, raising=False)
        else:
            monkeypatch.setenv(var, value)


@pytest.mark.parametrize(
    "traces, general, disabled, expected",
    [
        ("trace_endpoint", "general_endpoint", None, True),
        ("", "general_endpoint", "t", True),
        (None, "general_endpoint", "false", True),
        ("trace_endpoint", "", "1", True),
        ("", "", None, False),
        (None, None, None, False),
        ("trace_endpoint", "general_endpoint", "true", False),
    ],
)
def test_traces_enabled(clean_env, traces, general, disabled, expected):
    apply(
        clean_env,
        {
            OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: traces,
            OTEL_EXPORTER_OTLP_ENDPOINT: general,
            OTEL_SDK_DISABLED: disabled,
        },
    )
    assert traces_enabled() is expected


def test_get_empty_trace_context():
    assert OtlpConfig.get_trace_context() == "{}"


def test_set_empty_trace_context():
    OtlpConfig.set_trace_context("{}")
    assert OtlpConfig.get_trace_context() == "{}"


def test_trace_context_round_trip():
    OtlpConfig.set_trace_context(f'{{"traceparent": "{TRACEPARENT}"}}')
    assert OtlpConfig.get_trace_context() == f'{{"traceparent":"{TRACEPARENT}"}}'


def test_invalid_traceparent_is_dropped():
    OtlpConfig.set_trace_context('{"traceparent": "garbage"}')
    assert OtlpConfig.get_trace_context() == "{}"


def test_set_trace_context_rejects_invalid_json():
    with pytest.raises(ValueError):
        OtlpConfig.set_trace_context("not json")


def test_set_trace_context_rejects_non_object():
    with pytest.raises(ValueError):
        OtlpConfig.set_trace_context("[1, 2]")


def test_otel_endpoint_from_env(clean_env):
    clean_env.setenv(OTEL_EXPORTER_OTLP_TRACES_ENDPOINT, "trace_endpoint")
    assert traces_endpoint_from_env() == "trace_endpoint"


def test_otel_endpoint_from_env_fallback(clean_env):
    clean_env.setenv(OTEL_EXPORTER_OTLP_ENDPOINT, "fallback_endpoint")
    assert traces_endpoint_from_env() == "fallback_endpoint"


def test_otel_endpoint_from_env_missing():
    with pytest.raises(ShimError):
        traces_endpoint_from_env()


def test_otel_protocol_from_env(clean_env):
    clean_env.setenv(OTEL_EXPORTER_OTLP_TRACES_PROTOCOL, "grpc")
    assert traces_protocol_from_env() is Protocol.GRPC


def test_otel_protocol_from_env_fail(clean_env):
    clean_env.setenv(OTEL_EXPORTER_OTLP_PROTOCOL, "something-else")
    with pytest.raises(ShimError):
        traces_protocol_from_env()


def test_otel_protocol_from_env_default():
    assert traces_protocol_from_env() is Protocol.HTTP_BINARY


def test_otel_protocol_general_fallback(clean_env):
    clean_env.setenv(OTEL_EXPORTER_OTLP_PROTOCOL, "http/json")
    assert traces_protocol_from_env() is Protocol.HTTP_JSON


def test_build_with_both_specific_and_general_env_vars(clean_env):
    apply(
        clean_env,
        {
            OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: "trace_endpoint",
            OTEL_EXPORTER_OTLP_ENDPOINT: "general_endpoint",
            OTEL_EXPORTER_OTLP_TRACES_PROTOCOL: "grpc",
            OTEL_EXPORTER_OTLP_PROTOCOL: "http/protobuf",
        },
    )
    config = OtlpConfig.build_from_env()
    assert config.traces_endpoint == "trace_endpoint"
    assert config.traces_protocol is Protocol.GRPC


def test_build_missing_endpoint():
    with pytest.raises(ShimError):
        OtlpConfig.build_from_env()