"""Request/response models for classroom endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ClassCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    subject: str | None = Field(None, max_length=128)
    description: str | None = Field(None, max_length=4000)


class ClassUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    subject: str | None = Field(None, max_length=128)
    description: str | None = Field(None, max_length=4000)


class JoinClassRequest(_CamelModel):
    join_code: str = Field(..., alias="joinCode", min_length=4, max_length=16)


class ClassResponse(_CamelModel):
    id: int
    name: str
    subject: str | None = None
    description: str | None = None
    teacher_id: int = Field(serialization_alias="teacherId")
    join_code: str | None = Field(None, serialization_alias="joinCode")
    student_count: int = Field(0, serialization_alias="studentCount")
    created_at: datetime = Field(serialization_alias="createdAt")


class StudentResponse(_CamelModel):
    id: int
    name: str
    email: str
    photo_url: str | None = Field(None, serialization_alias="photoUrl")
    xp: int
    level: int


class AssignmentCreateRequest(_CamelModel):
    title: str = Field(..., min_length=1, max_length=256)
    description: str | None = Field(None, max_length=10_000)
    attachment_url: str | None = Field(None, alias="attachmentUrl", max_length=2048)
    due_date: datetime | None = Field(None, alias="dueDate")
    max_points: int = Field(100, alias="maxPoints", ge=1, le=10_000)


class AssignmentUpdateRequest(_CamelModel):
    title: str | None = Field(None, min_length=1, max_length=256)
    description: str | None = Field(None, max_length=10_000)
    attachment_url: str | None = Field(None, alias="attachmentUrl", max_length=2048)
    due_date: datetime | None = Field(None, alias="dueDate")
    max_points: int | None = Field(None, alias="maxPoints", ge=1, le=10_000)
    status: Literal["active", "archived"] | None = None


class AssignmentResponse(_CamelModel):
    id: int
    class_id: int = Field(serialization_alias="classId")
    title: str
    description: str | None = None
    attachment_url: str | None = Field(None, serialization_alias="attachmentUrl")
    due_date: datetime | None = Field(None, serialization_alias="dueDate")
    max_points: int = Field(serialization_alias="maxPoints")
    status: str
    created_at: datetime = Field(serialization_alias="createdAt")


class SubmitRequest(_CamelModel):
    content: str | None = Field(None, max_length=50_000)
    attachment_url: str | None = Field(None, alias="attachmentUrl", max_length=2048)


class GradeRequest(BaseModel):
    points: int
    feedback: str | None = Field(None, max_length=10_000)


class SubmissionResponse(_CamelModel):
    id: int
    assignment_id: int = Field(serialization_alias="assignmentId")
    student_id: int = Field(serialization_alias="studentId")
    content: str | None = None
    attachment_url: str | None = Field(None, serialization_alias="attachmentUrl")
    status: str
    points: int | None = None
    feedback: str | None = None
    submitted_at: datetime = Field(serialization_alias="submittedAt")
    graded_at: datetime | None = Field(None, serialization_alias="gradedAt")
