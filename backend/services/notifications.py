"""
In-memory notification feed.

Notifications are pushed in by the control server (or any other producer)
and read by the agent for context and proactive announcements.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field

from observability.logger import log_event, now_ms
from spec import NOTIFICATION_FEED_MAX


@dataclass(frozen=True)
class Notification:
    app: str
    sender: str
    text: str
    timestamp: int = field(default_factory=now_ms)
    conversation_title: str = ""

    @property
    def is_group(self) -> bool:
        return bool(self.conversation_title) and self.conversation_title != self.sender

    def to_context_string(self) -> str:
        prefix = f"[{self.app}] "
        if self.is_group:
            prefix += f"Group '{self.conversation_title}' - "
        return f"{prefix}{self.sender}: {self.text}"


class NotificationFeed:
    """
    Bounded, thread-safe notification buffer.

    Oldest notifications are evicted first once the feed is full.
    """

    def __init__(self, max_items: int = NOTIFICATION_FEED_MAX) -> None:
        self._items: deque[Notification] = deque(maxlen=max_items)
        self._lock = threading.Lock()

    def push(self, notification: Notification) -> None:
        with self._lock:
            self._items.append(notification)
        log_event({
            "event_type": "notification_received",
            "app": notification.app,
            "timestamp": notification.timestamp,
        })

    def recent(self, count: int) -> list[Notification]:
        if count <= 0:
            return []
        with self._lock:
            items = list(self._items)
        return items[-count:]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
