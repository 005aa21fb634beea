"""
Transient user-visible notices.

Rejections and persistence failures never interrupt the editor; they are
posted here and fanned out to whoever renders them (the WebSocket layer, a
test, a log).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    """How prominently a notice should be shown."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notice:
    """A single message for the user."""
    level: NoticeLevel
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "level": self.level.value,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }


class NoticeBoard:
    """Collects notices and forwards them to registered callbacks."""

    def __init__(self, max_kept: int = 50):
        self._notices: list[Notice] = []
        self._max_kept = max_kept
        self._callbacks: list[Callable[[Notice], None]] = []

    def on_notice(self, callback: Callable[[Notice], None]):
        """Register a callback receiving every posted notice."""
        self._callbacks.append(callback)

    def post(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._notices.append(notice)
        if len(self._notices) > self._max_kept:
            self._notices.pop(0)

        for callback in self._callbacks:
            try:
                callback(notice)
            except Exception:
                logger.exception("Notice callback failed")
        return notice

    def info(self, message: str) -> Notice:
        return self.post(NoticeLevel.INFO, message)

    def warning(self, message: str) -> Notice:
        return self.post(NoticeLevel.WARNING, message)

    def error(self, message: str) -> Notice:
        return self.post(NoticeLevel.ERROR, message)

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def clear(self):
        self._notices.clear()
