"""Request/response models for notification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class NotificationResponse(BaseModel):
    id: str
    type: str
    subtype: str
    title: str
    description: str | None = None
    timestamp: datetime
    read: bool
    action_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class SendMessageRequest(BaseModel):
    """Teacher message to one student (by id or email) or to a whole class."""

    model_config = ConfigDict(populate_by_name=True)

    student_id: int | None = Field(None, alias="studentId")
    student_email: EmailStr | None = Field(None, alias="studentEmail")
    class_id: int | None = Field(None, alias="classId")
    title: str = Field(..., min_length=1, max_length=256)
    message: str | None = Field(None, max_length=4000)

    @model_validator(mode="after")
    def require_one_target(self) -> SendMessageRequest:
        targets = [t for t in (self.student_id, self.student_email, self.class_id) if t is not None]
        if len(targets) != 1:
            raise ValueError("Exactly one of studentId, studentEmail or classId is required")
        return self
