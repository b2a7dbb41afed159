"""Тесты ограниченного буфера истории консоли и сети."""

from __future__ import annotations

import pytest

from vigil.observer.buffer import BoundedBuffer


def test_buffer_evicts_oldest_when_full() -> None:
    """При переполнении вытесняется самый старый элемент."""
    buffer: BoundedBuffer[int] = BoundedBuffer(3)
    for item in range(5):
        buffer.append(item)

    assert buffer.snapshot() == (2, 3, 4)
    assert len(buffer) == 3
    assert buffer.evicted == 2


def test_snapshot_is_detached_copy() -> None:
    """Снимок не меняется при последующих добавлениях."""
    buffer: BoundedBuffer[str] = BoundedBuffer(2)
    buffer.append("a")
    snapshot = buffer.snapshot()
    buffer.append("b")

    assert snapshot == ("a",)
    assert list(buffer) == ["a", "b"]


def test_clear_resets_items_and_eviction_counter() -> None:
    buffer: BoundedBuffer[int] = BoundedBuffer(1)
    buffer.append(1)
    buffer.append(2)

    buffer.clear()

    assert len(buffer) == 0
    assert buffer.evicted == 0
    assert buffer.capacity == 1


def test_zero_capacity_rejected() -> None:
    with pytest.raises(ValueError):
        BoundedBuffer(0)
