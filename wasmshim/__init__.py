"""Task service, instance lifecycle, events and OCI helpers for a containerd shim running WebAssembly."""

__version__ = "0.1.0"

__all__ = [
    "errors",
    "sync",
    "task_state",
    "instance",
    "instance_utils",
    "oci",
    "events",
    "stdio",
    "otel",
    "instance_data",
    "local",
]