"""Application-level exceptions.

These are business-logic errors, not HTTP errors. The presentation layer
(e.g. FastAPI routes) translates them into appropriate HTTP responses.
"""


class EmptyPromptError(ValueError):
    """Raised when the caller provides an empty or blank prompt."""


class UnsupportedCodeGenTypeError(ValueError):
    """Raised when the requested generation type has no pipeline."""


class PathSecurityError(ValueError):
    """Raised when a tool path escapes the project directory."""


class TransportError(RuntimeError):
    """Raised when the model transport yields no complete response."""
