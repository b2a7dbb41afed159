"""Ограниченный FIFO-буфер для истории консоли и сети."""

from __future__ import annotations

from collections import deque
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")


class BoundedBuffer(Generic[T]):
    """Очередь фиксированной ёмкости: при переполнении вытесняется самый старый элемент.

    Память ограничена ``capacity`` независимо от длины прогона.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._items: deque[T] = deque(maxlen=capacity)
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    @property
    def evicted(self) -> int:
        """Сколько элементов вытеснено с момента создания или последней очистки."""
        return self._evicted

    def append(self, item: T) -> None:
        if len(self._items) == self.capacity:
            self._evicted += 1
        self._items.append(item)

    def snapshot(self) -> tuple[T, ...]:
        """Неизменяемая копия текущего содержимого (от старых к новым)."""
        return tuple(self._items)

    def clear(self) -> None:
        self._items.clear()
        self._evicted = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(tuple(self._items))
