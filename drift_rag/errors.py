"""
Exception taxonomy for DRIFT retrieval.

User-facing errors (configuration, empty query, empty graph, no entry points)
carry enough detail for a caller to react. Provider failures wrap the original
exception. Inference errors never leave the inference engine.
"""

from typing import Any, Optional


class DriftRAGError(Exception):
    """Base class for all retrieval errors."""

    pass


class ConfigurationError(DriftRAGError, ValueError):
    """Invalid configuration value, raised at construction or update time."""

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class EmptyQueryError(DriftRAGError, ValueError):
    """Query is empty, whitespace-only or missing."""

    def __init__(self, message: str = "Query must be a non-empty string"):
        super().__init__(message)


class EmptyGraphError(DriftRAGError):
    """The underlying graph holds zero nodes."""

    def __init__(self, message: str = "Cannot query empty graph"):
        super().__init__(message)


class NoEntryPointsError(DriftRAGError):
    """The similarity index returned no candidate seeds for the query."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"No entry points found for query: {query!r}")


class ProviderError(DriftRAGError):
    """An external collaborator (embedding, index, LLM) failed."""

    def __init__(self, provider: str, message: str, cause: Optional[Exception] = None):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} provider failed: {message}")


class InferenceError(DriftRAGError):
    """Internal inference failure. Always recovered by the inference engine."""

    pass
