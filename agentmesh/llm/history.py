"""LLM layer — bounded rolling conversation history."""

from __future__ import annotations

from collections.abc import Iterator

from agentmesh.llm.models import ChatRole, ChatTurn

DEFAULT_CAPACITY = 10


class ConversationHistory:
    """Ordered chat turns with a fixed capacity.

    A system turn at index 0 is pinned: when an append would push the length
    past ``capacity``, the oldest non-system turn is evicted instead.
    Eviction happens on append, so the length never exceeds the capacity.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self._capacity = capacity
        self._turns: list[ChatTurn] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, turn: ChatTurn) -> None:
        if len(self._turns) >= self._capacity:
            pinned = bool(self._turns) and self._turns[0].role is ChatRole.SYSTEM
            del self._turns[1 if pinned else 0]
        self._turns.append(turn)

    def clear(self) -> None:
        self._turns.clear()

    def turns(self) -> list[ChatTurn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ChatTurn]:
        return iter(list(self._turns))
