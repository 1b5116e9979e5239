"""Small keyed-store abstraction for process-wide ticket state.

Vote records and active interview sessions live behind this interface. The
in-memory backend is only safe because the bot runs a single event loop in a
single process; a multi-process deployment needs a shared backend.
"""

from __future__ import annotations

from typing import Dict, Generic, Hashable, Iterator, Optional, Protocol, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedStore(Protocol[K, V]):
    def get(self, key: K) -> Optional[V]: ...

    def set(self, key: K, value: V) -> None: ...

    def delete(self, key: K) -> None: ...

    def pop(self, key: K) -> Optional[V]: ...

    def contains(self, key: K) -> bool: ...

    def keys(self) -> Iterator[K]: ...


class InMemoryKeyedStore(Generic[K, V]):
    """Dictionary-backed :class:`KeyedStore`; emptied on every restart."""

    def __init__(self) -> None:
        self._data: Dict[K, V] = {}

    def get(self, key: K) -> Optional[V]:
        return self._data.get(key)

    def set(self, key: K, value: V) -> None:
        self._data[key] = value

    def delete(self, key: K) -> None:
        self._data.pop(key, None)

    def pop(self, key: K) -> Optional[V]:
        return self._data.pop(key, None)

    def contains(self, key: K) -> bool:
        return key in self._data

    def keys(self) -> Iterator[K]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)


__all__ = ["InMemoryKeyedStore", "KeyedStore"]
