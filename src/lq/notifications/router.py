"""Notification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.dependencies import get_current_user, require_teacher
from lq.classroom.service import get_owned_class
from lq.database import get_session
from lq.db.models import Account
from lq.ledger.reward_service import resolve_student
from lq.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from lq.notifications.service import (
    create_notification,
    delete_notification,
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
    notify_class,
)
from lq.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List the caller's notifications (paginated, newest first)."""
    notifications, total = await get_notifications(db, user.id, page, per_page, unread_only)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=str(n.id),
                type=n.type,
                subtype=n.subtype,
                title=n.title,
                description=n.description,
                timestamp=n.created_at,
                read=n.read,
                action_url=n.action_url,
                metadata=n.notification_metadata or {},
            )
            for n in notifications
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_notification_count(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    count = await get_unread_count(db, user.id)
    return UnreadCountResponse(unread_count=count)


@router.post("/notifications/read-all", status_code=200)
async def mark_all_read(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    count = await mark_all_as_read(db, user.id)
    await db.commit()
    return {"detail": f"Marked {count} notifications as read"}


@router.post("/notifications/{notification_id}/read", status_code=200)
async def mark_notification_read(
    notification_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    found = await mark_as_read(db, user.id, notification_id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return {"detail": "Notification marked as read"}


@router.delete("/notifications/{notification_id}", status_code=204)
async def remove_notification(
    notification_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    if not await delete_notification(db, user.id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()


@router.post("/notifications/send", status_code=201)
async def send_message(
    body: SendMessageRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
):
    """Teacher message to one student or to every student of an owned class."""
    metadata = {"from_id": teacher.id, "from_name": teacher.name}
    if body.class_id is not None:
        await get_owned_class(db, teacher, body.class_id)
        sent = await notify_class(db, body.class_id, "teacher_message", body.title, body.message, metadata, redis)
    else:
        student = await resolve_student(db, body.student_id, body.student_email)
        await create_notification(
            db, student.id, "message", "teacher_message", body.title, body.message,
            metadata=metadata, redis=redis,
        )
        sent = 1
    await db.commit()
    return {"sent": sent}
