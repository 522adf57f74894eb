"""Function registry, event format conversion, CloudEvent parsing and structured logging."""

__version__ = "1.0.0"

__all__ = [
    "cloudevent",
    "downcast",
    "events",
    "fftypes",
    "functions",
    "logwriter",
    "pubsub",
    "registry",
    "upcast",
]