"""
Notification Service

Transient user-facing status messages. Notices stack, each one dismisses
itself after its own duration unless the duration is 0 (sticky), and an
identical notice that is already showing is refreshed instead of stacked.
"""
import asyncio
import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..core.logging_config import get_logger

logger = get_logger(__name__)


class NoticeLevel(str, Enum):
    """Notice severity."""
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A notice currently on screen."""
    id: int
    level: NoticeLevel
    message: str
    duration_ms: int
    created_at: float
    expires_at: Optional[float] = None
    _handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False, compare=False)

    @property
    def is_sticky(self) -> bool:
        return self.duration_ms == 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


Listener = Callable[[List[Notification]], None]


class NotificationService:
    """
    Stack of transient notices.

    Dismissal is scheduled on the running event loop when there is one, and
    also enforced lazily whenever the stack is read, using ``clock``.
    """

    def __init__(self, default_duration_ms: int = 5000, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            default_duration_ms: Duration used when notify() gets None
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self.default_duration_ms = default_duration_ms
        self._clock = clock
        self._ids = itertools.count(1)
        self._notices: Dict[int, Notification] = {}
        self._listeners: List[Listener] = []

    def notify(self, level, message: str, duration_ms: Optional[int] = None) -> Notification:
        """
        Show a notice.

        Args:
            level: success, info, warning or error
            message: Text to show
            duration_ms: None for the default, 0 to keep it until dismissed

        Returns:
            The notice on screen (an existing one if this is a duplicate)
        """
        level = NoticeLevel(level)
        duration = self.default_duration_ms if duration_ms is None else duration_ms
        if duration < 0:
            raise ValueError("duration_ms cannot be negative")

        self._prune()
        now = self._clock()

        existing = self._find(level, message)
        if existing is not None:
            # Same notice already visible: restart its timer, sticky wins
            if existing.is_sticky or duration == 0:
                existing.duration_ms = 0
            else:
                existing.duration_ms = duration
            self._schedule(existing, now)
            logger.debug(f"Refreshed duplicate {level.value} notice #{existing.id}")
            self._emit()
            return existing

        notice = Notification(
            id=next(self._ids),
            level=level,
            message=message,
            duration_ms=duration,
            created_at=now,
        )
        self._notices[notice.id] = notice
        self._schedule(notice, now)

        log = logger.warning if level in (NoticeLevel.WARNING, NoticeLevel.ERROR) else logger.info
        log(f"[{level.value}] {message}")
        self._emit()
        return notice

    def success(self, message: str, duration_ms: Optional[int] = None) -> Notification:
        return self.notify(NoticeLevel.SUCCESS, message, duration_ms)

    def warning(self, message: str, duration_ms: Optional[int] = None) -> Notification:
        return self.notify(NoticeLevel.WARNING, message, duration_ms)

    def error(self, message: str, duration_ms: Optional[int] = None) -> Notification:
        return self.notify(NoticeLevel.ERROR, message, duration_ms)

    def dismiss(self, notice_id: int) -> bool:
        """Remove a notice; returns False if it is already gone."""
        notice = self._notices.pop(notice_id, None)
        if notice is None:
            return False
        if notice._handle is not None:
            notice._handle.cancel()
        self._emit()
        return True

    def clear(self):
        for notice in self._notices.values():
            if notice._handle is not None:
                notice._handle.cancel()
        self._notices.clear()
        self._emit()

    @property
    def active(self) -> List[Notification]:
        """Visible notices, oldest first."""
        self._prune()
        return sorted(self._notices.values(), key=lambda n: n.id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _find(self, level: NoticeLevel, message: str) -> Optional[Notification]:
        for notice in self._notices.values():
            if notice.level == level and notice.message == message:
                return notice
        return None

    def _schedule(self, notice: Notification, now: float):
        if notice._handle is not None:
            notice._handle.cancel()
            notice._handle = None

        if notice.is_sticky:
            notice.expires_at = None
            return

        notice.expires_at = now + notice.duration_ms / 1000.0
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # No loop: expiry is enforced on read
        notice._handle = loop.call_later(notice.duration_ms / 1000.0, self.dismiss, notice.id)

    def _prune(self):
        now = self._clock()
        expired = [n.id for n in self._notices.values() if n.is_expired(now)]
        for notice_id in expired:
            notice = self._notices.pop(notice_id)
            if notice._handle is not None:
                notice._handle.cancel()
        if expired:
            self._emit()

    def _emit(self):
        snapshot = sorted(self._notices.values(), key=lambda n: n.id)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}", exc_info=True)
