"""Classroom endpoints: classes, rosters, assignments and submissions."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.dependencies import get_current_user, require_student, require_teacher
from lq.classroom import service
from lq.classroom.schemas import (
    AssignmentCreateRequest,
    AssignmentResponse,
    AssignmentUpdateRequest,
    ClassCreateRequest,
    ClassResponse,
    ClassUpdateRequest,
    GradeRequest,
    JoinClassRequest,
    StudentResponse,
    SubmissionResponse,
    SubmitRequest,
)
from lq.database import get_session
from lq.db.models import Account, Assignment, ClassRoom, Submission
from lq.errors import ForbiddenError
from lq.ledger.leaderboard_service import get_leaderboard
from lq.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1/classes", tags=["Classroom"])


async def _class_response(db: AsyncSession, classroom: ClassRoom, user: Account) -> ClassResponse:
    return ClassResponse(
        id=classroom.id,
        name=classroom.name,
        subject=classroom.subject,
        description=classroom.description,
        teacher_id=classroom.teacher_id,
        join_code=classroom.join_code if classroom.teacher_id == user.id else None,
        student_count=await service.count_students(db, classroom.id),
        created_at=classroom.created_at,
    )


def _assignment_response(a: Assignment) -> AssignmentResponse:
    return AssignmentResponse(
        id=a.id,
        class_id=a.class_id,
        title=a.title,
        description=a.description,
        attachment_url=a.attachment_url,
        due_date=a.due_date,
        max_points=a.max_points,
        status=a.status,
        created_at=a.created_at,
    )


def _submission_response(s: Submission) -> SubmissionResponse:
    return SubmissionResponse(
        id=s.id,
        assignment_id=s.assignment_id,
        student_id=s.student_id,
        content=s.content,
        attachment_url=s.attachment_url,
        status=s.status,
        points=s.points,
        feedback=s.feedback,
        submitted_at=s.submitted_at,
        graded_at=s.graded_at,
    )


# --- Classes ---


@router.post("", response_model=ClassResponse, status_code=201)
async def create_class(
    body: ClassCreateRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> ClassResponse:
    classroom = await service.create_class(db, teacher, body.name, body.subject, body.description)
    response = await _class_response(db, classroom, teacher)
    await db.commit()
    return response


@router.get("", response_model=list[ClassResponse])
async def my_classes(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[ClassResponse]:
    return [await _class_response(db, c, user) for c in await service.list_classes(db, user)]


@router.post("/join", response_model=ClassResponse)
async def join_class(
    body: JoinClassRequest,
    student: Account = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> ClassResponse:
    """Join by code. 404 for an unknown code, 400 if already joined."""
    classroom = await service.join_class(db, student, body.join_code)
    response = await _class_response(db, classroom, student)
    await db.commit()
    return response


@router.get("/{class_id}", response_model=ClassResponse)
async def get_class(
    class_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ClassResponse:
    classroom = await service.get_visible_class(db, user, class_id)
    return await _class_response(db, classroom, user)


@router.patch("/{class_id}", response_model=ClassResponse)
async def update_class(
    class_id: int,
    body: ClassUpdateRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> ClassResponse:
    classroom = await service.get_owned_class(db, teacher, class_id)
    await service.update_class(db, classroom, name=body.name, subject=body.subject, description=body.description)
    response = await _class_response(db, classroom, teacher)
    await db.commit()
    return response


@router.post("/{class_id}/reset-code", response_model=ClassResponse)
async def reset_code(
    class_id: int,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> ClassResponse:
    classroom = await service.get_owned_class(db, teacher, class_id)
    await service.reset_join_code(db, classroom)
    response = await _class_response(db, classroom, teacher)
    await db.commit()
    return response


@router.delete("/{class_id}", status_code=204)
async def delete_class(
    class_id: int,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> None:
    classroom = await service.get_owned_class(db, teacher, class_id)
    await service.delete_class(db, classroom)
    await db.commit()


@router.get("/{class_id}/students", response_model=list[StudentResponse])
async def students(
    class_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[StudentResponse]:
    await service.get_visible_class(db, user, class_id)
    return [
        StudentResponse(id=s.id, name=s.name, email=s.email, photo_url=s.photo_url, xp=s.xp, level=s.level)
        for s in await service.list_students(db, class_id)
    ]


@router.post("/{class_id}/leave", status_code=204)
async def leave_class(
    class_id: int,
    student: Account = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.get_class(db, class_id)
    await service.remove_student(db, class_id, student.id)
    await db.commit()


@router.delete("/{class_id}/students/{student_id}", status_code=204)
async def remove_student(
    class_id: int,
    student_id: int,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.get_owned_class(db, teacher, class_id)
    await service.remove_student(db, class_id, student_id)
    await db.commit()


@router.get("/{class_id}/leaderboard")
async def class_leaderboard(
    class_id: int,
    limit: int = Query(100, ge=1, le=1000),
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[dict[str, Any]]:
    await service.get_visible_class(db, user, class_id)
    return await get_leaderboard(db, class_id=class_id, limit=limit)


@router.get("/{class_id}/export")
async def export_class(
    class_id: int,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    classroom = await service.get_owned_class(db, teacher, class_id)
    return await service.export_summary(db, classroom)


# --- Assignments ---


@router.post("/{class_id}/assignments", response_model=AssignmentResponse, status_code=201)
async def create_assignment(
    class_id: int,
    body: AssignmentCreateRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> AssignmentResponse:
    classroom = await service.get_owned_class(db, teacher, class_id)
    assignment = await service.create_assignment(
        db,
        classroom,
        teacher,
        title=body.title,
        description=body.description,
        attachment_url=body.attachment_url,
        due_date=body.due_date,
        max_points=body.max_points,
    )
    response = _assignment_response(assignment)
    await db.commit()
    return response


@router.get("/{class_id}/assignments", response_model=list[AssignmentResponse])
async def list_assignments(
    class_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[AssignmentResponse]:
    await service.get_visible_class(db, user, class_id)
    return [_assignment_response(a) for a in await service.list_assignments(db, class_id)]


@router.get("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AssignmentResponse:
    assignment = await service.get_assignment(db, assignment_id)
    await service.get_visible_class(db, user, assignment.class_id)
    return _assignment_response(assignment)


@router.patch("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: int,
    body: AssignmentUpdateRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> AssignmentResponse:
    assignment = await service.get_assignment(db, assignment_id)
    await service.get_owned_class(db, teacher, assignment.class_id)
    await service.update_assignment(db, assignment, **body.model_dump(exclude_unset=True))
    response = _assignment_response(assignment)
    await db.commit()
    return response


@router.delete("/assignments/{assignment_id}", status_code=204)
async def delete_assignment(
    assignment_id: int,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> None:
    assignment = await service.get_assignment(db, assignment_id)
    await service.get_owned_class(db, teacher, assignment.class_id)
    await service.delete_assignment(db, assignment)
    await db.commit()


# --- Submissions ---


@router.post("/assignments/{assignment_id}/submissions", response_model=SubmissionResponse)
async def submit(
    assignment_id: int,
    body: SubmitRequest,
    student: Account = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> SubmissionResponse:
    """Submit or resubmit. A resubmission overwrites the previous one and returns it to pending."""
    assignment = await service.get_assignment(db, assignment_id)
    await service.get_visible_class(db, student, assignment.class_id)
    submission = await service.submit(db, assignment, student, body.content, body.attachment_url)
    response = _submission_response(submission)
    await db.commit()
    return response


@router.get("/assignments/{assignment_id}/submissions", response_model=list[SubmissionResponse])
async def list_submissions(
    assignment_id: int,
    status: str | None = Query(None, pattern="^(pending|reviewed)$"),
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> list[SubmissionResponse]:
    assignment = await service.get_assignment(db, assignment_id)
    await service.get_owned_class(db, teacher, assignment.class_id)
    return [_submission_response(s) for s in await service.list_submissions(db, assignment_id, status)]


@router.get("/submissions/mine", response_model=list[SubmissionResponse])
async def my_submissions(
    student: Account = Depends(require_student),
    db: AsyncSession = Depends(get_session),
) -> list[SubmissionResponse]:
    return [_submission_response(s) for s in await service.list_my_submissions(db, student.id)]


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SubmissionResponse:
    submission = await service.get_submission(db, submission_id)
    if submission.student_id != user.id:
        assignment = await service.get_assignment(db, submission.assignment_id)
        classroom = await service.get_class(db, assignment.class_id)
        if classroom.teacher_id != user.id:
            raise ForbiddenError("Not allowed to view this submission")
    return _submission_response(submission)


@router.post("/submissions/{submission_id}/grade", response_model=SubmissionResponse)
async def grade(
    submission_id: int,
    body: GradeRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> SubmissionResponse:
    """Grade within ``0..max_points``; the student's XP moves by the change in points."""
    submission = await service.get_submission(db, submission_id)
    assignment = await service.get_assignment(db, submission.assignment_id)
    await service.get_owned_class(db, teacher, assignment.class_id)
    await service.grade_submission(db, redis, submission, assignment, teacher, body.points, body.feedback)
    response = _submission_response(submission)
    await db.commit()
    return response
