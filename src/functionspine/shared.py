"""Shared globals — built during startup, frozen before serving.

Startup tasks populate a :class:`GlobalsBuilder`. Once the last task has
finished the host calls :meth:`GlobalsBuilder.freeze`, which returns a
read-only :class:`Globals` view and locks the builder. From then on every
mutation attempt, through either object, raises
:class:`~functionspine.errors.GlobalsFrozenError`.

Lazy values (``set_lazy``) are computed on first read, at most once, even
when several request threads race for them.

Example::

    def connect(function, globals, logger):
        globals["greeting"] = "Hello"
        globals.set_lazy("client", lambda: make_expensive_client())
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from typing import Any

from functionspine.errors import GlobalsFrozenError


class LazyValue:
    """A value computed by ``factory`` on first access."""

    __slots__ = ("_factory", "_lock", "_value", "_resolved")

    def __init__(self, factory: Callable[[], Any]):
        if not callable(factory):
            raise TypeError("Lazy global factory must be callable")
        self._factory = factory
        self._lock = threading.Lock()
        self._value: Any = None
        self._resolved = False

    def get(self) -> Any:
        if self._resolved:
            return self._value
        with self._lock:
            if not self._resolved:
                self._value = self._factory()
                self._resolved = True
        return self._value


def _resolve(value: Any) -> Any:
    return value.get() if isinstance(value, LazyValue) else value


class Globals(Mapping[str, Any]):
    """Immutable view of the shared globals."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None):
        object.__setattr__(self, "_data", dict(data or {}))

    def __getitem__(self, key: str) -> Any:
        return _resolve(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __setitem__(self, key: str, value: Any) -> None:
        raise GlobalsFrozenError(f"Cannot set global {key!r}: globals are frozen")

    def __delitem__(self, key: str) -> None:
        raise GlobalsFrozenError(f"Cannot delete global {key!r}: globals are frozen")

    def __setattr__(self, name: str, value: Any) -> None:
        raise GlobalsFrozenError("Globals are frozen")

    def set(self, key: str, value: Any) -> Any:
        raise GlobalsFrozenError(f"Cannot set global {key!r}: globals are frozen")

    def set_lazy(self, key: str, factory: Callable[[], Any]) -> None:
        raise GlobalsFrozenError(f"Cannot set global {key!r}: globals are frozen")

    @property
    def frozen(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Globals({sorted(self._data)!r})"


class GlobalsBuilder(MutableMapping[str, Any]):
    """Mutable globals handed to startup tasks."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})
        self._frozen = False

    def _check_mutable(self, key: str) -> None:
        if self._frozen:
            raise GlobalsFrozenError(f"Cannot modify global {key!r} after startup: globals are frozen")

    def __getitem__(self, key: str) -> Any:
        return _resolve(self._data[key])

    def __setitem__(self, key: str, value: Any) -> None:
        self._check_mutable(key)
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        self._check_mutable(key)
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def set(self, key: str, value: Any) -> Any:
        """Set a global and return the value."""
        self[key] = value
        return value

    def set_lazy(self, key: str, factory: Callable[[], Any]) -> None:
        """Set a global whose value is computed on first read."""
        self[key] = LazyValue(factory)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> Globals:
        """Lock this builder and return the read-only view.

        Calling ``freeze`` again is an error: the exchange happens once.
        """
        if self._frozen:
            raise GlobalsFrozenError("Globals have already been frozen")
        self._frozen = True
        return Globals(self._data)

    def __repr__(self) -> str:
        return f"GlobalsBuilder({sorted(self._data)!r}, frozen={self._frozen})"


__all__ = ["Globals", "GlobalsBuilder", "LazyValue"]
