"""Request-scoped notification outbox and its best-effort dispatcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from .. import models, notify, pubsub, schemas

logger = logging.getLogger(__name__)

# purpose: keep workflow transitions free of notification-sink error handling
# inputs: events appended by service operations during one request
# outputs: persisted Notification rows, emails and realtime pub/sub messages
# status: active


@dataclass(slots=True)
class NotificationEvent:
    """One message for one recipient, produced by a workflow transition."""

    recipient_id: UUID
    type: str
    message: str
    title: str | None = None
    related_id: UUID | None = None
    meta: dict[str, Any] = field(default_factory=dict)


class NotificationOutbox:
    """Collects events while a request mutates state; dispatched after commit."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def add(
        self,
        recipient_id: UUID,
        type: str,
        message: str,
        *,
        title: str | None = None,
        related_id: UUID | None = None,
        meta: dict[str, Any] | None = None,
    ) -> NotificationEvent:
        event = NotificationEvent(
            recipient_id=recipient_id,
            type=type,
            message=message,
            title=title,
            related_id=related_id,
            meta=dict(meta or {}),
        )
        self.events.append(event)
        return event

    def fan_out(
        self,
        recipients: Iterable[UUID],
        type: str,
        message: str,
        *,
        exclude: Iterable[UUID | None] = (),
        **kwargs: Any,
    ) -> list[NotificationEvent]:
        skipped = {value for value in exclude if value is not None}
        seen: set[UUID] = set()
        added = []
        for recipient_id in recipients:
            if recipient_id in skipped or recipient_id in seen:
                continue
            seen.add(recipient_id)
            added.append(self.add(recipient_id, type, message, **kwargs))
        return added

    async def dispatch(self, db: Session) -> int:
        """Deliver every queued event; failures are logged and never raised.

        Must run after the triggering transaction has committed. Returns the
        number of events that reached the in-app notification store.
        """

        delivered = 0
        events, self.events = self.events, []
        for event in events:
            try:
                notification = persist_notification(db, event)
            except Exception:
                db.rollback()
                logger.exception(
                    "failed to store %s notification for user %s", event.type, event.recipient_id
                )
                continue
            delivered += 1
            try:
                send_email_copy(db, event)
            except Exception:
                logger.exception("failed to email %s notification to user %s", event.type, event.recipient_id)
            try:
                await publish_realtime(notification)
            except Exception:
                logger.exception("failed to publish %s notification for user %s", event.type, event.recipient_id)
        if events:
            logger.info("dispatched %d/%d notifications", delivered, len(events))
        return delivered


def get_outbox() -> NotificationOutbox:
    return NotificationOutbox()


def persist_notification(db: Session, event: NotificationEvent) -> models.Notification:
    notification = models.Notification(
        user_id=event.recipient_id,
        type=event.type,
        message=event.message,
        title=event.title,
        related_id=event.related_id,
        meta=event.meta,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def channel_enabled(db: Session, user_id: UUID, pref_type: str, channel: str) -> bool:
    pref = (
        db.query(models.NotificationPreference)
        .filter_by(user_id=user_id, pref_type=pref_type, channel=channel)
        .first()
    )
    return pref is None or bool(pref.enabled)


def send_email_copy(db: Session, event: NotificationEvent) -> None:
    recipient = db.get(models.User, event.recipient_id)
    if recipient is None or not recipient.email:
        return
    if not channel_enabled(db, recipient.id, event.type, "email"):
        return
    notify.send_email(recipient.email, event.title or "Presswork notification", event.message)


async def publish_realtime(notification: models.Notification) -> None:
    payload = jsonable_encoder(schemas.NotificationOut.model_validate(notification))
    await pubsub.publish_user_event(
        notification.user_id,
        {
            "type": "notification_created",
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
