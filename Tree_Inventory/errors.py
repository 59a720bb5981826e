from __future__ import annotations


class ValidationError(ValueError):
    """A request was rejected before anything was persisted."""


class RecordNotFoundError(KeyError):
    """No stored tree has the requested id."""


class ResponseFormatError(ValueError):
    """A remote service answered with a payload that does not match the expected shape."""


class RemoteServiceError(RuntimeError):
    """A remote service could not be reached or answered with an HTTP error."""
