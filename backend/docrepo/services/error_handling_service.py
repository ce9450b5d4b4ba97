"""
Error Handling Service

Classifies operation failures, keeps a queue of operations the user can
retry, and turns failures into notices.
"""
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .notification_service import NotificationService
from ..api.exceptions import FailureKind, classify_error, error_text, is_retryable
from ..core.logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"


@dataclass
class FailedOperation:
    """A failure waiting in the retry queue."""
    operation_type: str
    subject_id: Optional[Any]
    error: BaseException
    retryable: bool
    user_message: str
    kind: FailureKind = FailureKind.NETWORK_OR_SERVER
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def key(self):
        return (self.operation_type, self.subject_id)


# Retry handlers take the subject id and may be plain functions or coroutines
RetryHandler = Callable[[Optional[Any]], Any]


class ErrorHandlingService:
    """
    Routes failures to the retry queue and the notification stack.

    Features:
    - One queue entry per (operation, subject); a newer failure replaces an older one
    - Custom, derived or generic user messages
    - Replay of every queued failure through per-operation handlers
    """

    def __init__(self, notifications: Optional[NotificationService] = None):
        """
        Args:
            notifications: Where notices go (None = log only)
        """
        self._notifications = notifications
        self._queue: List[FailedOperation] = []

    @property
    def failed_operations(self) -> List[FailedOperation]:
        return list(self._queue)

    @property
    def has_failures(self) -> bool:
        return bool(self._queue)

    def report(
        self,
        operation_type: str,
        subject_id: Optional[Any],
        error: BaseException,
        add_to_retry_queue: bool = True,
        custom_message: Optional[str] = None,
        show_notice: bool = True
    ) -> FailedOperation:
        """
        Record a failed operation.

        Args:
            operation_type: Kind of operation ("metadata", "delete", ...)
            subject_id: Document (or upload) the operation was about, or None
            error: The exception raised by the operation
            add_to_retry_queue: Queue the failure for retry_all()
            custom_message: Message shown instead of the derived one
            show_notice: Emit an error notice

        Returns:
            The recorded failure
        """
        kind = classify_error(error)
        message = self._message_for(operation_type, error, custom_message)
        failed = FailedOperation(
            operation_type=operation_type,
            subject_id=subject_id,
            error=error,
            retryable=is_retryable(error),
            user_message=message,
            kind=kind,
        )

        logger.error(
            f"Operation '{operation_type}' failed for {subject_id if subject_id is not None else 'batch'} "
            f"({kind.value}): {error!r}",
            exc_info=error,
        )

        if kind == FailureKind.USER_CANCELLED:
            return failed

        if add_to_retry_queue:
            self._queue = [op for op in self._queue if op.key != failed.key]
            self._queue.append(failed)

        if show_notice and self._notifications is not None:
            self._notifications.error(message)

        return failed

    @staticmethod
    def _message_for(operation_type: str, error: BaseException, custom_message: Optional[str]) -> str:
        if custom_message:
            return custom_message
        text = error_text(error)
        if text:
            return f"Error during {operation_type} operation: {text}"
        return UNKNOWN_ERROR_MESSAGE

    def dismiss(self, operation: FailedOperation) -> bool:
        """Drop one failure from the queue without retrying it."""
        before = len(self._queue)
        self._queue = [op for op in self._queue if op.key != operation.key]
        return len(self._queue) != before

    def clear(self):
        self._queue.clear()

    async def retry_all(self, handlers: Dict[str, RetryHandler]) -> int:
        """
        Replay every queued failure.

        The queue is emptied before replay; a replay that fails again comes
        back through report(), so entries never pile up.

        Args:
            handlers: Retry handler per operation type

        Returns:
            Number of operations replayed
        """
        pending = self._queue
        self._queue = []
        replayed = 0

        logger.info(f"Retrying {len(pending)} failed operations")
        for operation in pending:
            handler = handlers.get(operation.operation_type)
            if handler is None:
                logger.warning(f"No retry handler for '{operation.operation_type}', keeping it queued")
                self._queue.append(operation)
                continue

            replayed += 1
            try:
                result = handler(operation.subject_id)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.report(operation.operation_type, operation.subject_id, e)

        return replayed
