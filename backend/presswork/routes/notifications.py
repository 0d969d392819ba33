from uuid import UUID
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session
from sqlalchemy import and_

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, pubsub


async def _publish_notification_event(
    user: models.User, event_type: str, payload: dict
) -> None:
    """Publish a notification lifecycle event on the user's channel."""
    event = {
        "type": event_type,
        "data": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    await pubsub.publish_user_event(user.id, event)


def _settings_from_user(user: models.User) -> schemas.NotificationSettingsOut:
    return schemas.NotificationSettingsOut(
        digest_frequency=user.digest_frequency or "daily",
        last_digest=user.last_digest,
    )


router = APIRouter(prefix="/api/notifications", tags=["notifications"])

@router.get("/", response_model=list[schemas.NotificationOut])
async def list_notifications(
    is_read: Optional[bool] = Query(None, description="Filter by read status"),
    type: Optional[str] = Query(None, description="Filter by notification type"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = db.query(models.Notification).filter(models.Notification.user_id == user.id)

    if is_read is not None:
        query = query.filter(models.Notification.is_read == is_read)

    if type:
        query = query.filter(models.Notification.type == type)

    return query.order_by(models.Notification.created_at.desc()).all()


@router.get("/unread-count")
async def unread_count(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    count = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user.id, models.Notification.is_read == False)
        .count()
    )
    return {"unread": count}


@router.post("/{notification_id}/read", response_model=schemas.NotificationOut)
async def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    notif = (
        db.query(models.Notification)
        .filter_by(id=notification_id, user_id=user.id)
        .first()
    )
    if not notif:
        raise HTTPException(status_code=404, detail="Notification not found")
    notif.is_read = True
    db.commit()
    db.refresh(notif)
    payload = jsonable_encoder(
        schemas.NotificationOut.model_validate(notif)
    )
    await _publish_notification_event(user, "notification_read", payload)
    return notif


@router.post("/mark-all-read")
async def mark_all_read(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Mark all unread notifications as read"""
    updated = (
        db.query(models.Notification)
        .filter(
            and_(
                models.Notification.user_id == user.id,
                models.Notification.is_read == False
            )
        )
        .all()
    )
    for notif in updated:
        notif.is_read = True
    db.commit()
    if updated:
        await _publish_notification_event(
            user, "notifications_read", {"ids": [str(n.id) for n in updated]}
        )
    return {"message": f"Marked {len(updated)} notifications as read", "updated": len(updated)}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Delete a notification"""
    notif = (
        db.query(models.Notification)
        .filter_by(id=notification_id, user_id=user.id)
        .first()
    )
    if not notif:
        raise HTTPException(status_code=404, detail="Notification not found")

    payload = jsonable_encoder(
        schemas.NotificationOut.model_validate(notif)
    )
    db.delete(notif)
    db.commit()
    await _publish_notification_event(user, "notification_deleted", payload)
    return {"message": "Notification deleted"}


@router.get("/preferences", response_model=list[schemas.NotificationPreferenceOut])
async def list_preferences(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return db.query(models.NotificationPreference).filter_by(user_id=user.id).all()


@router.put(
    "/preferences/{pref_type}/{channel}",
    response_model=schemas.NotificationPreferenceOut,
)
async def set_preference(
    pref_type: str,
    channel: str,
    pref: schemas.NotificationPreferenceUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    obj = (
        db.query(models.NotificationPreference)
        .filter_by(user_id=user.id, pref_type=pref_type, channel=channel)
        .first()
    )
    if obj:
        obj.enabled = pref.enabled
    else:
        obj = models.NotificationPreference(
            user_id=user.id,
            pref_type=pref_type,
            channel=channel,
            enabled=pref.enabled,
        )
        db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@router.get("/settings", response_model=schemas.NotificationSettingsOut)
async def get_settings(
    current_user: models.User = Depends(get_current_user),
):
    return _settings_from_user(current_user)


@router.put("/settings", response_model=schemas.NotificationSettingsOut)
async def update_settings(
    payload: schemas.NotificationSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    current_user.digest_frequency = payload.digest_frequency
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return _settings_from_user(current_user)
