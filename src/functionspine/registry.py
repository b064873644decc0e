"""Function Registry — name → function definition lookup.

Manifesto:
The host needs to resolve ``"hello"`` to the definition it should serve.
The registry decouples registration (at import time, while the source
file loads) from resolution (once, at startup), and supports both a
process default and injectable instances for testing.

ARCHITECTURE
────────────
::

    FunctionRegistry
      ├── .register(definition)             ─ store / overwrite by name
      ├── .get(name)                        ─ lookup, UndefinedFunctionError
      ├── .has(name)                        ─ existence check
      ├── .register_http(name, handler)     ─ shortcuts, return the registry
      ├── .register_typed(name, handler, request_decoder=None)
      ├── .register_event(name, handler)
      └── .add_startup_task(task)           ─ ordered, run once at startup

    get_default_registry()     ─ module-level default
    reset_default_registry()   ─ clear for testing

BEST PRACTICES
──────────────
- Use the ``functionspine.http`` / ``typed`` / ``cloud_event`` decorators
  in function source files; pass an explicit ``FunctionRegistry`` in tests.
- Call ``reset_default_registry()`` in test fixtures.
- Finish all registration before serving. The registry has no locks.

Related modules:
    lifecycle.py  — FunctionHost resolves targets and runs startup tasks
    models.py     — FunctionDefinition

Tags:
    function-spine, registry, lookup, startup-tasks

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from functionspine.errors import UndefinedFunctionError
from functionspine.models import FunctionDefinition, FunctionKind
from functionspine.settings import DEFAULT_TARGET

StartupTask = Callable[..., Any]


class FunctionRegistry:
    """Injectable function registry.

    Example:
        >>> registry = FunctionRegistry()
        >>> registry.register_http("hello", lambda request: "Hello!").get("hello").kind
        <FunctionKind.HTTP: 'http'>
    """

    def __init__(self):
        self._functions: dict[str, FunctionDefinition] = {}
        self._startup_tasks: list[StartupTask] = []

    def register(self, definition: FunctionDefinition) -> FunctionRegistry:
        """Register a function, replacing any previous one with the same name."""
        self._functions[definition.name] = definition
        return self

    def register_http(self, name: str, handler: Callable[..., Any]) -> FunctionRegistry:
        return self.register(FunctionDefinition.http(name, handler))

    def register_typed(
        self,
        name: str,
        handler: Callable[..., Any],
        request_decoder: Callable[[Any], Any] | None = None,
    ) -> FunctionRegistry:
        return self.register(FunctionDefinition.typed(name, handler, request_decoder))

    def register_event(self, name: str, handler: Callable[..., Any]) -> FunctionRegistry:
        return self.register(FunctionDefinition.cloud_event(name, handler))

    def add_startup_task(self, task: StartupTask) -> FunctionRegistry:
        """Append a startup task.

        Tasks are called as ``task(function, globals=..., logger=...)`` in
        registration order before the server starts.
        """
        if not callable(task):
            raise TypeError("Startup task must be callable")
        self._startup_tasks.append(task)
        return self

    register_startup_task = add_startup_task

    def get(self, name: str) -> FunctionDefinition:
        """Get a function definition.

        Raises:
            UndefinedFunctionError: If no function has that name
        """
        try:
            return self._functions[name]
        except KeyError:
            raise UndefinedFunctionError(name, available=self.names()) from None

    def __getitem__(self, name: str) -> FunctionDefinition:
        return self.get(name)

    def has(self, name: str) -> bool:
        """Check if a function exists."""
        return name in self._functions

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def names(self, kind: FunctionKind | None = None) -> list[str]:
        """List registered function names, optionally filtered by kind."""
        return sorted(
            name for name, definition in self._functions.items() if kind is None or definition.kind is kind
        )

    @property
    def startup_tasks(self) -> tuple[StartupTask, ...]:
        return tuple(self._startup_tasks)

    def clear(self) -> None:
        """Clear all functions and startup tasks (for testing)."""
        self._functions.clear()
        self._startup_tasks.clear()


# === DEFAULT REGISTRY ===

_default_registry: FunctionRegistry | None = None


def get_default_registry() -> FunctionRegistry:
    """Get the process default registry.

    Creates it lazily on first access.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = FunctionRegistry()
    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (for testing)."""
    global _default_registry
    _default_registry = None


# === DECORATOR API ===


def _target(registry: FunctionRegistry | None) -> FunctionRegistry:
    return registry if registry is not None else get_default_registry()


def http(name: str = DEFAULT_TARGET, *, registry: FunctionRegistry | None = None):
    """Decorator to register an HTTP function.

    Example:
        >>> @http("hello")
        ... def hello(request):
        ...     return "Hello!"
    """

    def decorator(func: Callable) -> Callable:
        _target(registry).register_http(name, func)
        return func

    return decorator


def typed(
    name: str = DEFAULT_TARGET,
    *,
    request_decoder: Callable[[Any], Any] | None = None,
    registry: FunctionRegistry | None = None,
):
    """Decorator to register a typed (JSON in, JSON out) function.

    Example:
        >>> @typed("add")
        ... def add(payload):
        ...     return {"sum": payload["a"] + payload["b"]}
    """

    def decorator(func: Callable) -> Callable:
        _target(registry).register_typed(name, func, request_decoder)
        return func

    return decorator


def cloud_event(name: str = DEFAULT_TARGET, *, registry: FunctionRegistry | None = None):
    """Decorator to register an event function.

    The handler receives a ``CanonicalEvent``; its return value is ignored.
    """

    def decorator(func: Callable) -> Callable:
        _target(registry).register_event(name, func)
        return func

    return decorator


def on_startup(task: StartupTask | None = None, *, registry: FunctionRegistry | None = None):
    """Register a startup task. Usable bare or with arguments.

    Example:
        >>> @on_startup
        ... def connect(function, globals, logger):
        ...     globals["greeting"] = "Hello"
    """

    def decorator(func: StartupTask) -> StartupTask:
        _target(registry).add_startup_task(func)
        return func

    if task is not None:
        return decorator(task)
    return decorator


__all__ = [
    "FunctionRegistry",
    "http",
    "typed",
    "cloud_event",
    "on_startup",
    "StartupTask",
    "get_default_registry",
    "reset_default_registry",
]
