"""FIFO queue with a synchronous observer list.

The queue knows nothing about what it stores. Subscribers are called in
registration order, on the caller's stack, before the mutating method returns.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class QueueAction(str, enum.Enum):
    ENQUEUED = "enqueued"
    DEQUEUED = "dequeued"
    CLEARED = "cleared"


@dataclass(frozen=True, slots=True)
class QueueEvent(Generic[T]):
    action: QueueAction
    item: T | None = None


class _Node(Generic[T]):
    __slots__ = ("data", "next")

    def __init__(self, data: T):
        self.data = data
        self.next: _Node[T] | None = None


class OrderedQueue(Generic[T]):
    def __init__(self):
        self._head: _Node[T] | None = None
        self._tail: _Node[T] | None = None
        self._size = 0
        self._subscribers: list[Callable[[QueueEvent[T]], None]] = []

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[T]:
        node = self._head
        while node is not None:
            yield node.data
            node = node.next

    @property
    def size(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._head is None

    def enqueue(self, item: T) -> None:
        node = _Node(item)
        if self._tail is None:
            self._head = self._tail = node
        else:
            self._tail.next = node
            self._tail = node
        self._size += 1
        self._emit(QueueEvent(QueueAction.ENQUEUED, item))

    def dequeue(self) -> T | None:
        node = self._head
        if node is None:
            return None
        self._head = node.next
        node.next = None
        self._size -= 1
        if self._head is None:
            self._tail = None
        self._emit(QueueEvent(QueueAction.DEQUEUED, node.data))
        return node.data

    def peek(self) -> T | None:
        return self._head.data if self._head is not None else None

    def clear(self) -> list[T]:
        """Drop every item and return them, oldest first.

        Emits a single CLEARED event, not one per item.
        """
        dropped = list(self)
        self._head = self._tail = None
        self._size = 0
        self._emit(QueueEvent(QueueAction.CLEARED))
        return dropped

    def subscribe(self, callback: Callable[[QueueEvent[T]], None]) -> Callable[[], None]:
        """Register *callback* for every event. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, event: QueueEvent[T]) -> None:
        for callback in tuple(self._subscribers):
            callback(event)
