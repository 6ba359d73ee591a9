"""Pull-based notifications. Nothing is pushed; clients poll ``list_notifications``."""
from sqlalchemy.orm import Session

from .errors import read_op, write_op
from .models import Notification, User


def create_notification(db: Session, recipient_id, sender: User, type, ref_id=None, text=None):
    # Joins the caller's transaction; no commit here
    if not recipient_id or recipient_id == sender.id:
        return None
    n = Notification(
        recipient_id=recipient_id,
        sender_id=sender.id,
        sender_name=sender.display_name or "",
        type=type,
        ref_id=ref_id,
        text=text,
    )
    db.add(n)
    return n


@read_op(default=list)
def list_notifications(db: Session, user_id: str, unread_only: bool = True):
    query = db.query(Notification).filter(Notification.recipient_id == user_id)
    if unread_only:
        query = query.filter(Notification.read == False)  # noqa: E712
    return query.order_by(Notification.created_at.desc()).all()


@write_op
def mark_all_read(db: Session, user_id: str) -> int:
    return db.query(Notification).filter(
        Notification.recipient_id == user_id, Notification.read == False  # noqa: E712
    ).update({"read": True})
