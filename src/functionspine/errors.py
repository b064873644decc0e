"""
Structured error types for function-spine.

Every failure the runtime raises on purpose is a :class:`FunctionSpineError`.
Errors carry a category (for log routing), an HTTP status for the ones that
are surfaced to callers, a structured context, and an optional chained
cause.

Manifesto:
    - **Fail fast at startup:** A missing target or a failing startup task
      stops the process before it serves a single request.
    - **Contain per request:** Decode, normalization and handler failures
      become a response for that request only.
    - **Loud invariants:** Mutating frozen globals is a programmer error and
      is never silently ignored.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                    FunctionSpineError                        │
        │       (category, status_code, context, cause)                │
        ├──────────────────────────────────────────────────────────────┤
        │                                                              │
        │  Startup (fatal)            Per request                      │
        │  ───────────────            ───────────                      │
        │  UndefinedFunctionError     RequestError (400)               │
        │  SourceLoadError              ├─ UnrecognizedEventFormatError│
        │  StartupTaskError             └─ DecodeError                 │
        │  LifecycleError                                              │
        │                             HandlerError (500)               │
        │  Invariant                                                   │
        │  ─────────                                                   │
        │  GlobalsFrozenError                                          │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = UndefinedFunctionError("Undefined function: 'hello'")
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>

    >>> error = DecodeError("Malformed JSON").with_context(function="add")
    >>> error.status_code
    400
    >>> error.context.function
    'add'

Tags:
    error-handling, exception-hierarchy, function-spine, dispatch

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"  # Unknown target, bad settings
    LIFECYCLE = "LIFECYCLE"  # Startup tasks, state machine misuse
    CLIENT = "CLIENT"  # Bad payloads from the caller
    HANDLER = "HANDLER"  # User function failures
    INTERNAL = "INTERNAL"  # Broken runtime invariants


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging."""

    function: str | None = None
    kind: str | None = None
    request_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["function", "kind", "request_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FunctionSpineError(Exception):
    """Base exception for all function-spine errors.

    Subclasses set ``default_category`` and, when the error maps onto a
    response, ``status_code``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    status_code: int | None = None

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FunctionSpineError:
        """Add context to this error (fluent API).

        Usage:
            raise HandlerError("Boom").with_context(function="hello")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.status_code is not None:
            result["status_code"] = self.status_code
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# STARTUP ERRORS (fatal)
# =============================================================================


class UndefinedFunctionError(FunctionSpineError):
    """The requested target function is not in the registry."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, name: str, available: list[str] | None = None, **kwargs: Any):
        self.name = name
        self.available = list(available or [])
        message = f"Undefined function: {name!r}"
        if available is not None:
            message += f". Available functions: {self.available or 'none'}"
        super().__init__(message, **kwargs)
        self.context.function = name


class SourceLoadError(FunctionSpineError):
    """The function source file or module could not be loaded."""

    default_category = ErrorCategory.CONFIG


class StartupTaskError(FunctionSpineError):
    """A startup task raised; the server must not start."""

    default_category = ErrorCategory.LIFECYCLE


class LifecycleError(FunctionSpineError):
    """An operation was attempted in the wrong lifecycle state."""

    default_category = ErrorCategory.LIFECYCLE


class GlobalsFrozenError(FunctionSpineError):
    """Shared globals were mutated after the freeze point."""

    default_category = ErrorCategory.INTERNAL


# =============================================================================
# PER-REQUEST ERRORS
# =============================================================================


class RequestError(FunctionSpineError):
    """The caller sent something the function cannot accept."""

    default_category = ErrorCategory.CLIENT
    status_code = 400


class UnrecognizedEventFormatError(RequestError):
    """Payload is neither a CloudEvent nor a known legacy event."""


class DecodeError(RequestError):
    """Request body could not be decoded into the handler's input."""


class HandlerError(FunctionSpineError):
    """The user function failed or returned something unusable."""

    default_category = ErrorCategory.HANDLER
    status_code = 500


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FunctionSpineError",
    "UndefinedFunctionError",
    "SourceLoadError",
    "StartupTaskError",
    "LifecycleError",
    "GlobalsFrozenError",
    "RequestError",
    "UnrecognizedEventFormatError",
    "DecodeError",
    "HandlerError",
]
