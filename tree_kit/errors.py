"""
Error types raised by the detection toolkit.

Unreadable images surface as the built-in `FileNotFoundError` / `OSError`.
"""


class DecodeError(ValueError):
    """Image resize/decode or model output had an unexpected shape."""


class InferenceOutputError(RuntimeError):
    """The expected output tensor is missing or has no readable detection count."""
