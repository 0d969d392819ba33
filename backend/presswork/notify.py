import logging
import os
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        logger.debug("SMTP_SERVER not configured, dropping email to %s", to_email)
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(server) as s:
        s.send_message(msg)


def send_daily_digest(db):
    """Email each daily-digest user the notifications created since their last digest."""
    from . import models

    now = datetime.now(timezone.utc)
    users = db.query(models.User).all()
    sent = 0
    for user in users:
        if not user.email:
            continue
        if user.digest_frequency and user.digest_frequency != "daily":
            continue
        query = db.query(models.Notification).filter(models.Notification.user_id == user.id)
        if user.last_digest is not None:
            query = query.filter(models.Notification.created_at > user.last_digest)
        notifs = query.order_by(models.Notification.created_at).all()
        if not notifs:
            continue
        content = "\n".join(n.message for n in notifs)
        send_email(user.email, "Daily Notification Digest", content)
        user.last_digest = now
        sent += 1
    db.commit()
    logger.info("daily digest sent to %d users", sent)
    return sent
