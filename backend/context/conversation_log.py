"""
Conversation log and state feed (single writer, many readers).

Responsibilities:
- Broadcast immutable log entries and agent state changes to observers
- Keep a bounded replay buffer so late subscribers see recent history
- Never block the writer: a slow subscriber loses its oldest items

Non-responsibilities:
- No persistence
- No formatting for any particular UI
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from observability.logger import log_event, now_ms
from spec import CONVERSATION_LOG_REPLAY, CONVERSATION_LOG_SUBSCRIBER_BUFFER


T = TypeVar("T")


@dataclass(frozen=True)
class ConversationLogEntry:
    """One line of the visible conversation (user, agent, or system)."""
    sender: str
    text: str
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, object]:
        return {"sender": self.sender, "text": self.text, "timestamp": self.timestamp}


class Subscription(Generic[T]):
    """
    A single reader's view of a Broadcast.

    Iterate with `async for`, or call get(). close() detaches the reader.
    """

    def __init__(self, owner: Broadcast[T], buffer: int) -> None:
        self._owner = owner
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=buffer)
        self.dropped = 0

    def _offer(self, item: T) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    async def get(self) -> T:
        return await self._queue.get()

    def get_nowait(self) -> T:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._owner.unsubscribe(self)

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()


class Broadcast(Generic[T]):
    """
    Multi-reader, single-writer fan-out with replay.

    Invariants:
    - publish() never blocks and never raises
    - subscribe() delivers the replay buffer first, oldest to newest
    """

    def __init__(
        self,
        name: str,
        *,
        replay: int,
        subscriber_buffer: int = CONVERSATION_LOG_SUBSCRIBER_BUFFER,
    ) -> None:
        self._name = name
        self._replay: deque[T] = deque(maxlen=replay)
        self._subscriber_buffer = max(subscriber_buffer, replay)
        self._subscribers: list[Subscription[T]] = []

    def publish(self, item: T) -> None:
        self._replay.append(item)
        for sub in self._subscribers:
            before = sub.dropped
            sub._offer(item)  # pylint: disable=protected-access
            if sub.dropped != before:
                log_event({
                    "event_type": "broadcast_subscriber_overflow",
                    "feed": self._name,
                    "dropped_total": sub.dropped,
                })

    def subscribe(self) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self, self._subscriber_buffer)
        for item in self._replay:
            sub._offer(item)  # pylint: disable=protected-access
        self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription[T]) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    def snapshot(self) -> list[T]:
        return list(self._replay)

    @property
    def latest(self) -> T | None:
        return self._replay[-1] if self._replay else None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class ConversationLog(Broadcast[ConversationLogEntry]):
    """Broadcast of conversation log entries with a 50-entry replay buffer."""

    def __init__(self, replay: int = CONVERSATION_LOG_REPLAY) -> None:
        super().__init__("conversation_log", replay=replay)

    def emit(self, sender: str, text: str) -> ConversationLogEntry:
        entry = ConversationLogEntry(sender=sender, text=text)
        self.publish(entry)
        return entry
