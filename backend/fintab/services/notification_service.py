# Overview: In-app notification rows for workflow hand-offs and reviews.

from __future__ import annotations

from ..extensions import db
from ..models import Notification, Membership


class NotificationNotFoundError(Exception):
    pass


def owner_user_ids(business_id: int) -> set[int]:
    rows = db.session.query(Membership.user_id).filter_by(
        business_id=business_id,
        role="Owner",
        status="Active",
    ).all()
    return {row[0] for row in rows}


def notify_users(
    business_id: int,
    user_ids,
    *,
    title: str,
    message: str,
    type: str = "info",
    link: str | None = None,
    exclude_user_id: int | None = None,
) -> list[Notification]:
    """
    Queue one notification per distinct recipient.

    Rows join the caller's transaction; nothing is committed here.
    """
    created = []
    for user_id in sorted(set(user_ids)):
        if user_id is None or user_id == exclude_user_id:
            continue
        notification = Notification(
            business_id=business_id,
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            link=link,
        )
        db.session.add(notification)
        created.append(notification)
    return created


def notify_workflow_role(
    business_id: int,
    role_key: str,
    *,
    title: str,
    message: str,
    type: str = "action_required",
    link: str | None = None,
    exclude_user_id: int | None = None,
    include_owners: bool = True,
) -> list[Notification]:
    """Notify every holder of role_key (and the owners) except the actor."""
    from .workflow_role_service import holder_user_ids

    recipients = set(holder_user_ids(business_id, role_key))
    if include_owners:
        recipients |= owner_user_ids(business_id)
    return notify_users(
        business_id,
        recipients,
        title=title,
        message=message,
        type=type,
        link=link,
        exclude_user_id=exclude_user_id,
    )


def list_notifications(business_id: int, user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter_by(business_id=business_id, user_id=user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.id.desc()).limit(limit).all()


def mark_read(business_id: int, user_id: int, notification_id: int) -> Notification:
    notification = db.session.query(Notification).filter_by(
        id=notification_id,
        business_id=business_id,
        user_id=user_id,
    ).first()
    if not notification:
        raise NotificationNotFoundError("Notification not found")
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read(business_id: int, user_id: int) -> int:
    count = (
        db.session.query(Notification)
        .filter_by(business_id=business_id, user_id=user_id, is_read=False)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    return count
