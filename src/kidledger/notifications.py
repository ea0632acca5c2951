"""Notification primitives for kidledger.

The core never depends on delivery: callers hand a :class:`Notification` to an
optional :class:`Notifier` and any failure is logged and ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence

from .ops import StructuredLogger


class NotificationType(str, Enum):
    TRANSACTION_CREATED = "transaction_created"
    ALLOWANCE_PAID = "allowance_paid"
    BUDGET_WARNING = "budget_warning"
    TASK_ASSIGNED = "task_assigned"
    TASK_PENDING_APPROVAL = "task_pending_approval"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"


@dataclass(slots=True)
class Notification:
    """Simple representation of a notification waiting to be delivered."""

    type: NotificationType
    title: str
    body: str
    account_id: Optional[int] = None
    family_id: Optional[str] = None
    data: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "type": self.type.value,
            "title": self.title,
            "body": self.body,
            "account_id": self.account_id,
            "family_id": self.family_id,
            "created_at": self.created_at.isoformat(),
        }
        payload.update(self.data)
        return payload


class Notifier(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class NotificationCenter:
    """In-memory notification inbox used for tests and integrations."""

    def __init__(self) -> None:
        self._queue: List[Notification] = []
        self._sent: List[Notification] = []

    def send(self, notification: Notification) -> None:
        self._queue.append(notification)

    def pending(self, *, notification_type: NotificationType | None = None) -> Sequence[Notification]:
        if notification_type is None:
            return tuple(self._queue)
        return tuple(item for item in self._queue if item.type is notification_type)

    def for_account(self, account_id: int) -> Sequence[Notification]:
        return tuple(item for item in self._queue if item.account_id == account_id)

    def pop_all(self) -> Sequence[Notification]:
        pending = tuple(self._queue)
        self._queue.clear()
        self._sent.extend(pending)
        return pending

    def history(self) -> Sequence[Notification]:
        return tuple(self._sent)


def deliver(notifier: Optional[Notifier], notification: Notification, logger: StructuredLogger) -> bool:
    """Fire-and-forget delivery; returns ``False`` when the notifier failed."""

    if notifier is None:
        return False
    try:
        notifier.send(notification)
    except Exception as exc:  # notifier failures never reach the caller
        logger.error(
            "notification_failed",
            notification=notification.type.value,
            account_id=notification.account_id,
            error=str(exc),
        )
        return False
    return True


__all__ = [
    "Notification",
    "NotificationCenter",
    "NotificationType",
    "Notifier",
    "deliver",
]
