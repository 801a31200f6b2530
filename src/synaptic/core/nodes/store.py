"""Shared store and parameter sets passed through graph execution.

Shared store:
    Any MutableMapping[str, Any]; a plain dict is the default. One instance
    lives for one top-level run and is passed by reference to every node and
    every nested graph. The engine never copies it.

SynchronizedStore:
    Lock-guarded store for opt-in parallel batch flows, where several
    sub-graph runs write to the same store at once.

Params:
    Immutable per-scope configuration. Nodes read it; new sets are derived,
    existing ones are never mutated.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, TypeAlias

SharedStore: TypeAlias = MutableMapping[str, Any]


class SynchronizedStore(MutableMapping[str, Any]):
    """Shared store guarded by a re-entrant lock.

    Single reads and writes are atomic. Read-modify-write sequences must
    hold the lock explicitly via locked().

    Example:
        >>> shared = SynchronizedStore({"results": []})
        >>> shared.append("results", 42)
        >>> with shared.locked():
        ...     shared["count"] = shared.get("count", 0) + 1
    """

    def __init__(self, initial: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        self._data: dict[str, Any] = dict(initial or {}, **kwargs)
        self._lock = threading.RLock()

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def __delitem__(self, key: str) -> None:
        with self._lock:
            del self._data[key]

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._data))

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    @contextmanager
    def locked(self) -> Iterator[SynchronizedStore]:
        """Hold the store lock for a read-modify-write sequence."""
        with self._lock:
            yield self

    def setdefault(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.setdefault(key, default)

    def append(self, key: str, value: Any) -> None:
        """Atomically append value to the list stored under key.

        Creates the list if the key is missing.
        """
        with self._lock:
            self._data.setdefault(key, []).append(value)

    def snapshot(self) -> dict[str, Any]:
        """Return a shallow plain-dict copy of the current contents."""
        with self._lock:
            return dict(self._data)

    def __repr__(self) -> str:
        return f"SynchronizedStore({self.snapshot()!r})"


class Params(Mapping[str, Any]):
    """Immutable parameter set.

    Example:
        >>> params = Params({"model": "small"})
        >>> per_item = params.derive(item="a.txt")
        >>> per_item["model"], per_item["item"]
        ('small', 'a.txt')
        >>> "item" in params
        False
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        merged = dict(data or {})
        merged.update(kwargs)
        for key in merged:
            if not isinstance(key, str):
                raise TypeError(f"Param keys must be strings, got {type(key).__name__}: {key!r}")
        object.__setattr__(self, "_data", MappingProxyType(merged))

    @classmethod
    def coerce(cls, value: Params | Mapping[str, Any] | None) -> Params:
        """Return value as a Params instance (None becomes an empty set)."""
        if isinstance(value, Params):
            return value
        if value is None:
            return cls()
        if not isinstance(value, Mapping):
            raise TypeError(f"Params must be a mapping, got {type(value).__name__}")
        return cls(value)

    def derive(self, updates: Mapping[str, Any] | None = None, **kwargs: Any) -> Params:
        """Create a new parameter set with updates layered over this one."""
        if not updates and not kwargs:
            return self
        merged = dict(self._data)
        merged.update(updates or {})
        merged.update(kwargs)
        return Params(merged)

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable copy."""
        return dict(self._data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Params is immutable; use derive() to build a new set")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("Params is immutable")

    def __reduce__(self) -> tuple[Any, ...]:
        return (Params, (dict(self._data),))

    def __repr__(self) -> str:
        return f"Params({dict(self._data)!r})"
