from __future__ import annotations

from sqlmodel import Session, select, func

from .models import Notification

KINDS = ("success", "info", "warning", "error")


def notify(session: Session, user_id: int, title: str, message: str, kind: str = "info") -> Notification:
    """Queue a notification on the session. The caller commits."""
    if kind not in KINDS:
        raise ValueError(f"Unknown notification kind: {kind}")
    note = Notification(user_id=user_id, title=title, message=message, kind=kind)
    session.add(note)
    return note


def list_for_user(session: Session, user_id: int, limit: int | None = None) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    return list(session.exec(stmt).all())


def unread_count(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.read == False,  # noqa: E712
        )
    ).one()


def mark_read(session: Session, user_id: int, notification_id: int) -> bool:
    note = session.get(Notification, notification_id)
    if not note or note.user_id != user_id:
        return False
    if not note.read:
        note.read = True
        session.add(note)
        session.commit()
    return True


def mark_all_read(session: Session, user_id: int) -> int:
    notes = session.exec(
        select(Notification).where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
    ).all()
    for note in notes:
        note.read = True
        session.add(note)
    session.commit()
    return len(notes)
