"""In-memory notification queue between the accounting code and the UI."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

KINDS = ("success", "info", "warning", "error")


@dataclass(frozen=True)
class Notification:
    kind: str
    title: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationStore:
    """Bounded FIFO; the oldest entries drop once ``maxlen`` is reached."""

    def __init__(self, maxlen: int = 50) -> None:
        self._queue: deque[Notification] = deque(maxlen=maxlen)

    def __len__(self) -> int:
        return len(self._queue)

    def emit(self, kind: str, title: str, message: str = "") -> Notification:
        if kind not in KINDS:
            raise ValueError(f"Invalid notification kind: {kind}")
        notification = Notification(kind=kind, title=title, message=message)
        self._queue.append(notification)
        return notification

    def success(self, title: str, message: str = "") -> Notification:
        return self.emit("success", title, message)

    def info(self, title: str, message: str = "") -> Notification:
        return self.emit("info", title, message)

    def warning(self, title: str, message: str = "") -> Notification:
        return self.emit("warning", title, message)

    def error(self, title: str, message: str = "") -> Notification:
        return self.emit("error", title, message)

    def drain(self) -> list[Notification]:
        """Remove and return everything queued, oldest first."""
        items = list(self._queue)
        self._queue.clear()
        return items
