"""Notification creation, delivery and inbox management.

Notifications are persisted first, then pushed to the account's open
WebSocket connections (Redis pub/sub -> WS bridge).

Types: ledger, classroom, hackathon, message
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import utcnow
from lq.db.models import ClassMember, Notification
from lq.notifications.push import push_after_commit

VALID_TYPES = {"ledger", "classroom", "hackathon", "message"}


async def create_notification(
    db: AsyncSession,
    account_id: int,
    type_: str,
    subtype: str,
    title: str,
    description: str | None = None,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> Notification:
    """Persist a notification; the WebSocket push goes out when ``db`` commits."""
    if type_ not in VALID_TYPES:
        raise ValueError(f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}")

    notification = Notification(
        account_id=account_id,
        type=type_,
        subtype=subtype,
        title=title,
        description=description,
        action_url=action_url,
        notification_metadata=metadata or {},
        read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.flush()

    push_after_commit(db, redis, notification)
    return notification


async def notify_class(
    db: AsyncSession,
    class_id: int,
    subtype: str,
    title: str,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> int:
    """Send a message notification to every student of a class. Returns recipients."""
    result = await db.execute(select(ClassMember.student_id).where(ClassMember.class_id == class_id))
    student_ids = [row[0] for row in result]
    for student_id in student_ids:
        await create_notification(
            db, student_id, "message", subtype, title, description,
            action_url=f"/classes/{class_id}", metadata=metadata, redis=redis,
        )
    return len(student_ids)


async def get_notifications(
    db: AsyncSession,
    account_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    """Return one page of notifications (most recent first) and the total."""
    conditions = [Notification.account_id == account_id]
    if unread_only:
        conditions.append(Notification.read.is_(False))

    total = (
        await db.execute(select(func.count()).select_from(Notification).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, account_id: int, notification_id: int) -> bool:
    """Mark a single notification as read. Returns True if found."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.account_id == account_id)
        .values(read=True)
    )
    await db.flush()
    return result.rowcount > 0


async def mark_all_as_read(db: AsyncSession, account_id: int) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.account_id == account_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.flush()
    return result.rowcount


async def get_unread_count(db: AsyncSession, account_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.account_id == account_id, Notification.read.is_(False))
    )
    return result.scalar_one()


async def delete_notification(db: AsyncSession, account_id: int, notification_id: int) -> bool:
    """Delete one of the account's own notifications. Returns True if found."""
    result = await db.execute(
        delete(Notification).where(
            Notification.id == notification_id,
            Notification.account_id == account_id,
        )
    )
    await db.flush()
    return result.rowcount > 0
