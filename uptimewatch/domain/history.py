from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar('T')

HISTORY_LIMIT = 100


class HistoryRing(Generic[T]):
    """Fixed-capacity ring of poll results, iterated oldest first."""

    def __init__(self, items: Iterable[T] = (), capacity: int = HISTORY_LIMIT) -> None:
        if capacity < 1:
            raise ValueError('capacity must be at least 1')
        self._capacity = capacity
        self._slots: list[T | None] = [None] * capacity
        self._start = 0
        self._size = 0
        for item in items:
            self.append(item)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, item: T) -> None:
        if self._size < self._capacity:
            self._slots[(self._start + self._size) % self._capacity] = item
            self._size += 1
            return
        # full: overwrite the oldest slot and advance the read index
        self._slots[self._start] = item
        self._start = (self._start + 1) % self._capacity

    def newest(self) -> T | None:
        if self._size == 0:
            return None
        return self._slots[(self._start + self._size - 1) % self._capacity]

    def recent(self, count: int) -> list[T]:
        if count <= 0:
            return []
        items = self.to_list()
        return items[-count:]

    def to_list(self) -> list[T]:
        return list(self)

    def __iter__(self) -> Iterator[T]:
        for offset in range(self._size):
            yield self._slots[(self._start + offset) % self._capacity]

    def __len__(self) -> int:
        return self._size

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HistoryRing):
            return NotImplemented
        return self.to_list() == other.to_list()

    def __repr__(self) -> str:
        return f'HistoryRing(size={self._size}, capacity={self._capacity})'
