"""
Notification dispatch.

Fire-and-forget: delivery failures are logged and never propagate into the
operation that produced the notification.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel, Field

from learnpath.config import Settings, get_settings
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    """Student-facing notification kinds."""
    CHECKPOINT_COMPLETED = "checkpoint_completed"
    PATH_COMPLETED = "path_completed"
    LEVEL_UP = "level_up"
    BADGE_EARNED = "badge_earned"
    DAILY_GOAL_COMPLETED = "daily_goal_completed"


class Notification(BaseModel):
    """One message for a student."""

    student_id: uuid.UUID
    kind: NotificationKind
    payload: Dict[str, Any] = {}
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationDispatcher:
    """Base dispatcher. Subclasses implement `deliver`."""

    async def deliver(self, notification: Notification) -> None:
        raise NotImplementedError

    async def notify(
        self,
        student_id: uuid.UUID,
        kind: NotificationKind,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.dispatch(Notification(student_id=student_id, kind=kind, payload=payload or {}))

    async def dispatch(self, notification: Notification) -> None:
        try:
            await self.deliver(notification)
        except Exception as exc:
            logger.warning(
                "Notification %s not delivered: %s",
                notification.kind.value,
                exc,
                extra={"student_id": str(notification.student_id)},
            )

    async def dispatch_all(self, notifications: Iterable[Notification]) -> None:
        for notification in notifications:
            await self.dispatch(notification)


class LoggingDispatcher(NotificationDispatcher):
    """Writes notifications to the application log."""

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            "Notify %s",
            notification.kind.value,
            extra={"student_id": str(notification.student_id), "payload": notification.payload},
        )


class WebhookDispatcher(NotificationDispatcher):
    """POSTs each notification as JSON to a configured URL."""

    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def deliver(self, notification: Notification) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.url, json=notification.model_dump(mode="json"))
            response.raise_for_status()


class RecordingDispatcher(NotificationDispatcher):
    """Keeps delivered notifications in memory."""

    def __init__(self) -> None:
        self.sent: List[Notification] = []

    async def deliver(self, notification: Notification) -> None:
        self.sent.append(notification)


def build_dispatcher(settings: Optional[Settings] = None) -> NotificationDispatcher:
    settings = settings or get_settings()
    if settings.notification_webhook_url:
        return WebhookDispatcher(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
    return LoggingDispatcher()
