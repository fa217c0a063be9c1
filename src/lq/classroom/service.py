"""Classes, rosters, assignments and submission grading.

Grading feeds the ledger: a submission remembers how much XP it has already
granted (``points_awarded``), and every grade moves the student's XP by the
difference, so regrading never double-counts.
"""

from __future__ import annotations

import secrets
import string
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import utcnow
from lq.config import get_settings
from lq.db.base import insert_for
from lq.db.models import Account, Assignment, ClassMember, ClassRoom, Submission
from lq.errors import AlreadyJoinedError, ClassroomError, DomainError, ForbiddenError, NotFoundError
from lq.ledger.badge_service import evaluate_auto_badges
from lq.ledger.xp_service import adjust_xp
from lq.notifications.service import create_notification

logger = structlog.get_logger()

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
_MAX_CODE_ATTEMPTS = 20


def generate_join_code(length: int | None = None) -> str:
    length = length or get_settings().join_code_length
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


async def _unique_join_code(db: AsyncSession) -> str:
    for _ in range(_MAX_CODE_ATTEMPTS):
        code = generate_join_code()
        taken = (await db.execute(select(ClassRoom.id).where(ClassRoom.join_code == code))).scalar_one_or_none()
        if taken is None:
            return code
    raise ClassroomError("Could not generate a unique join code")


# --- Access ---


async def get_class(db: AsyncSession, class_id: int) -> ClassRoom:
    classroom = await db.get(ClassRoom, class_id)
    if classroom is None:
        raise NotFoundError("Class not found")
    return classroom


async def is_member(db: AsyncSession, class_id: int, student_id: int) -> bool:
    result = await db.execute(
        select(ClassMember.id).where(ClassMember.class_id == class_id, ClassMember.student_id == student_id)
    )
    return result.scalar_one_or_none() is not None


async def can_view_class(db: AsyncSession, user: Account, class_id: int) -> bool:
    """Owner teacher or enrolled student."""
    classroom = await get_class(db, class_id)
    if classroom.teacher_id == user.id:
        return True
    return await is_member(db, class_id, user.id)


async def get_owned_class(db: AsyncSession, teacher: Account, class_id: int) -> ClassRoom:
    classroom = await get_class(db, class_id)
    if classroom.teacher_id != teacher.id:
        raise ForbiddenError("You do not own this class")
    return classroom


async def get_visible_class(db: AsyncSession, user: Account, class_id: int) -> ClassRoom:
    classroom = await get_class(db, class_id)
    if classroom.teacher_id != user.id and not await is_member(db, class_id, user.id):
        raise ForbiddenError("Not a member of this class")
    return classroom


# --- Classes ---


async def create_class(
    db: AsyncSession,
    teacher: Account,
    name: str,
    subject: str | None = None,
    description: str | None = None,
) -> ClassRoom:
    classroom = ClassRoom(
        teacher_id=teacher.id,
        name=name,
        subject=subject,
        description=description,
        join_code=await _unique_join_code(db),
    )
    db.add(classroom)
    await db.flush()
    logger.info("class_created", class_id=classroom.id, teacher_id=teacher.id)
    return classroom


async def list_classes(db: AsyncSession, user: Account) -> list[ClassRoom]:
    """Teachers see the classes they own; students the classes they joined."""
    if user.role == "teacher":
        stmt = select(ClassRoom).where(ClassRoom.teacher_id == user.id)
    else:
        stmt = (
            select(ClassRoom)
            .join(ClassMember, ClassMember.class_id == ClassRoom.id)
            .where(ClassMember.student_id == user.id)
        )
    result = await db.execute(stmt.order_by(ClassRoom.created_at.desc(), ClassRoom.id.desc()))
    return list(result.scalars().all())


async def count_students(db: AsyncSession, class_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(ClassMember).where(ClassMember.class_id == class_id)
    )
    return result.scalar_one()


async def list_students(db: AsyncSession, class_id: int) -> list[Account]:
    result = await db.execute(
        select(Account)
        .join(ClassMember, ClassMember.student_id == Account.id)
        .where(ClassMember.class_id == class_id)
        .order_by(Account.name, Account.id)
    )
    return list(result.scalars().all())


async def join_class(db: AsyncSession, student: Account, join_code: str) -> ClassRoom:
    result = await db.execute(select(ClassRoom).where(ClassRoom.join_code == join_code.strip().upper()))
    classroom = result.scalar_one_or_none()
    if classroom is None:
        raise NotFoundError("Invalid join code")

    stmt = (
        insert_for(db, ClassMember)
        .values(class_id=classroom.id, student_id=student.id, joined_at=utcnow())
        .on_conflict_do_nothing(index_elements=["class_id", "student_id"])
    )
    if (await db.execute(stmt)).rowcount == 0:
        raise AlreadyJoinedError("Already joined this class")

    logger.info("class_joined", class_id=classroom.id, student_id=student.id)
    return classroom


async def remove_student(db: AsyncSession, class_id: int, student_id: int) -> None:
    result = await db.execute(
        delete(ClassMember).where(ClassMember.class_id == class_id, ClassMember.student_id == student_id)
    )
    if result.rowcount == 0:
        raise NotFoundError("Student is not in this class")
    logger.info("class_member_removed", class_id=class_id, student_id=student_id)


async def update_class(db: AsyncSession, classroom: ClassRoom, **fields: Any) -> ClassRoom:
    for key, value in fields.items():
        if value is not None:
            setattr(classroom, key, value)
    classroom.updated_at = utcnow()
    await db.flush()
    return classroom


async def reset_join_code(db: AsyncSession, classroom: ClassRoom) -> ClassRoom:
    classroom.join_code = await _unique_join_code(db)
    classroom.updated_at = utcnow()
    await db.flush()
    return classroom


async def delete_class(db: AsyncSession, classroom: ClassRoom) -> None:
    """Delete a class with its assignments, submissions and roster."""
    assignment_ids = select(Assignment.id).where(Assignment.class_id == classroom.id)
    await db.execute(delete(Submission).where(Submission.assignment_id.in_(assignment_ids)))
    await db.execute(delete(Assignment).where(Assignment.class_id == classroom.id))
    await db.execute(delete(ClassMember).where(ClassMember.class_id == classroom.id))
    await db.delete(classroom)
    await db.flush()
    logger.info("class_deleted", class_id=classroom.id)


async def export_summary(db: AsyncSession, classroom: ClassRoom) -> dict[str, Any]:
    """Per-student submission statistics for the class."""
    students = await list_students(db, classroom.id)
    assignment_count = (
        await db.execute(select(func.count()).select_from(Assignment).where(Assignment.class_id == classroom.id))
    ).scalar_one()

    stats = await db.execute(
        select(
            Submission.student_id,
            func.count(Submission.id),
            func.count(Submission.graded_at),
            func.avg(Submission.points),
        )
        .join(Assignment, Assignment.id == Submission.assignment_id)
        .where(Assignment.class_id == classroom.id)
        .group_by(Submission.student_id)
    )
    by_student = {row[0]: row[1:] for row in stats}

    rows = []
    for student in students:
        submitted, reviewed, average = by_student.get(student.id, (0, 0, None))
        rows.append({
            "id": student.id,
            "name": student.name,
            "email": student.email,
            "xp": student.xp,
            "level": student.level,
            "submitted": submitted,
            "reviewed": reviewed,
            "averageScore": round(float(average), 2) if average is not None else None,
        })

    return {
        "classId": classroom.id,
        "name": classroom.name,
        "assignments": assignment_count,
        "students": rows,
    }


# --- Assignments ---


async def create_assignment(db: AsyncSession, classroom: ClassRoom, teacher: Account, **fields: Any) -> Assignment:
    assignment = Assignment(class_id=classroom.id, created_by=teacher.id, **fields)
    db.add(assignment)
    await db.flush()
    logger.info("assignment_created", assignment_id=assignment.id, class_id=classroom.id)
    return assignment


async def list_assignments(db: AsyncSession, class_id: int) -> list[Assignment]:
    result = await db.execute(
        select(Assignment)
        .where(Assignment.class_id == class_id)
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
    )
    return list(result.scalars().all())


async def get_assignment(db: AsyncSession, assignment_id: int) -> Assignment:
    assignment = await db.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    return assignment


async def update_assignment(db: AsyncSession, assignment: Assignment, **fields: Any) -> Assignment:
    for key, value in fields.items():
        if value is not None:
            setattr(assignment, key, value)
    assignment.updated_at = utcnow()
    await db.flush()
    return assignment


async def delete_assignment(db: AsyncSession, assignment: Assignment) -> None:
    await db.execute(delete(Submission).where(Submission.assignment_id == assignment.id))
    await db.delete(assignment)
    await db.flush()


# --- Submissions ---


async def submit(
    db: AsyncSession,
    assignment: Assignment,
    student: Account,
    content: str | None,
    attachment_url: str | None,
) -> Submission:
    """Create or overwrite the student's submission. Overwriting resets it to pending."""
    if assignment.status != "active":
        raise DomainError("Assignment is not accepting submissions")
    if not content and not attachment_url:
        raise DomainError("Submission needs content or an attachment")

    result = await db.execute(
        select(Submission).where(Submission.assignment_id == assignment.id, Submission.student_id == student.id)
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        submission = Submission(assignment_id=assignment.id, student_id=student.id)
        db.add(submission)

    submission.content = content
    submission.attachment_url = attachment_url
    submission.status = "pending"
    submission.submitted_at = utcnow()
    await db.flush()
    logger.info("submission_saved", submission_id=submission.id, assignment_id=assignment.id, student_id=student.id)
    return submission


async def get_submission(db: AsyncSession, submission_id: int) -> Submission:
    submission = await db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission not found")
    return submission


async def list_submissions(db: AsyncSession, assignment_id: int, status: str | None = None) -> list[Submission]:
    stmt = select(Submission).where(Submission.assignment_id == assignment_id)
    if status is not None:
        stmt = stmt.where(Submission.status == status)
    result = await db.execute(stmt.order_by(Submission.submitted_at.desc(), Submission.id.desc()))
    return list(result.scalars().all())


async def list_my_submissions(db: AsyncSession, student_id: int) -> list[Submission]:
    result = await db.execute(
        select(Submission)
        .where(Submission.student_id == student_id)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
    )
    return list(result.scalars().all())


async def grade_submission(
    db: AsyncSession,
    redis: Any | None,
    submission: Submission,
    assignment: Assignment,
    teacher: Account,
    points: int,
    feedback: str | None = None,
) -> Submission:
    """Grade (or regrade) a submission and move the student's XP by the difference."""
    if not 0 <= points <= assignment.max_points:
        raise DomainError(f"Points must be between 0 and {assignment.max_points}")

    delta = points - submission.points_awarded
    submission.points = points
    submission.points_awarded = points
    submission.feedback = feedback
    submission.status = "reviewed"
    submission.graded_at = utcnow()
    submission.graded_by = teacher.id
    await db.flush()

    if delta:
        await adjust_xp(
            db, redis, submission.student_id, delta, "assignment",
            reason=f"Graded: {assignment.title}", source_id=str(submission.id),
        )
    await create_notification(
        db,
        submission.student_id,
        "classroom",
        "submission_graded",
        f'"{assignment.title}" was graded',
        f"You scored {points}/{assignment.max_points}",
        action_url=f"/classes/{assignment.class_id}/assignments/{assignment.id}",
        metadata={"submission_id": submission.id, "points": points},
        redis=redis,
    )
    student = await db.get(Account, submission.student_id)
    if student is not None:
        await evaluate_auto_badges(db, redis, student)

    logger.info("submission_graded", submission_id=submission.id, points=points, xp_delta=delta)
    return submission
