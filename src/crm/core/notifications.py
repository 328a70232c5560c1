"""User-facing notification sink.

Notifications are fire-and-forget: callers never await them and a failing
sink must never break the operation that emitted the message. The
NotificationCenter keeps a bounded history of transient, dismissible
messages for whatever front end renders them, and logs each one.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from enum import Enum

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class Notification(BaseModel):
    """A single transient message shown to the user."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    level: NotificationLevel
    title: str
    description: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier(ABC):
    """Abstract "show user message" sink."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        """Deliver a notification. Must not raise."""
        ...

    def success(self, title: str, description: str | None = None) -> None:
        self.notify(
            Notification(level=NotificationLevel.SUCCESS, title=title, description=description)
        )

    def error(self, title: str, description: str | None = None) -> None:
        self.notify(
            Notification(level=NotificationLevel.ERROR, title=title, description=description)
        )

    def info(self, title: str, description: str | None = None) -> None:
        self.notify(
            Notification(level=NotificationLevel.INFO, title=title, description=description)
        )


class NotificationCenter(Notifier):
    """Bounded in-memory history of notifications, oldest dropped first.

    Args:
        max_history: Number of notifications retained (dismissed or not).
    """

    def __init__(self, max_history: int = 50) -> None:
        self._history: deque[Notification] = deque(maxlen=max_history)
        self._dismissed: set[str] = set()

    def notify(self, notification: Notification) -> None:
        if self._history.maxlen is not None and len(self._history) == self._history.maxlen:
            # The oldest entry is about to be evicted; forget its dismissal too
            self._dismissed.discard(self._history[0].id)
        self._history.append(notification)
        log = logger.warning if notification.level == NotificationLevel.ERROR else logger.info
        log(
            "notification.emitted",
            level=notification.level.value,
            title=notification.title,
            description=notification.description,
        )

    def dismiss(self, notification_id: str) -> bool:
        """Hide a notification. Returns False if it is unknown or already gone."""
        if not any(n.id == notification_id for n in self._history):
            return False
        self._dismissed.add(notification_id)
        return True

    def active(self) -> list[Notification]:
        """Notifications not yet dismissed, oldest first."""
        return [n for n in self._history if n.id not in self._dismissed]

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    def errors(self) -> list[Notification]:
        return [n for n in self._history if n.level == NotificationLevel.ERROR]
