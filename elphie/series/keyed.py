"""Sorted, unique-key series used for every derived chart sequence."""

from __future__ import annotations

import bisect
from typing import Generic, Iterable, Iterator, TypeVar

V = TypeVar("V")


class KeyedSeries(Generic[V]):
    """Time-keyed values, strictly ascending by key with no duplicates.

    ``upsert`` replaces in place when the key exists and inserts at the sorted
    position otherwise, so out-of-order or repeated delivery never breaks the
    ordering invariant.
    """

    def __init__(self, name: str):
        self.name = name
        self._keys: list = []
        self._values: dict = {}

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[V]:
        return (self._values[k] for k in self._keys)

    def keys(self) -> list:
        return list(self._keys)

    def values(self) -> list[V]:
        return [self._values[k] for k in self._keys]

    def get(self, key, default: V | None = None) -> V | None:
        return self._values.get(key, default)

    @property
    def last_key(self):
        return self._keys[-1] if self._keys else None

    def last(self) -> V | None:
        return self._values[self._keys[-1]] if self._keys else None

    def clear(self) -> None:
        self._keys.clear()
        self._values.clear()

    def replace(self, items: Iterable[tuple[object, V]]) -> None:
        """Rebuild from ``(key, value)`` pairs; later duplicates overwrite earlier ones."""
        values: dict = {}
        for key, value in items:
            values[key] = value
        self._values = values
        self._keys = sorted(values)

    def upsert(self, key, value: V) -> bool:
        """Insert or replace ``key``. Returns True when the key was new."""
        if key in self._values:
            self._values[key] = value
            return False
        if not self._keys or key > self._keys[-1]:
            self._keys.append(key)
        else:
            bisect.insort(self._keys, key)
        self._values[key] = value
        return True

    def remove(self, key) -> bool:
        if key not in self._values:
            return False
        del self._values[key]
        idx = bisect.bisect_left(self._keys, key)
        del self._keys[idx]
        return True
