"""Building blocks for web services."""

__version__ = "0.1.0"

__all__ = [
    "dbarray",
    "delegate",
    "docker",
    "keystore",
    "logger",
    "order",
    "page",
    "tracing",
    "types",
    "web",
    "worker",
]