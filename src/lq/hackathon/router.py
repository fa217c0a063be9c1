"""Hackathon endpoints: events, teams, submissions, grading and polls."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.dependencies import get_current_user, require_teacher
from lq.database import get_session
from lq.db.models import Account, Hackathon, Team
from lq.errors import NotFoundError
from lq.hackathon import service
from lq.hackathon.schemas import (
    AddMemberRequest,
    AmendSubmissionRequest,
    GradeTeamRequest,
    HackathonCreateRequest,
    HackathonResponse,
    HackathonUpdateRequest,
    PollCreateRequest,
    ProgressUpdateRequest,
    ProgressUpdateResponse,
    SubmitProjectRequest,
    TeamCreateRequest,
    TeamMemberResponse,
    TeamResponse,
    TeamUpdateRequest,
    VoteRequest,
)
from lq.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1/hackathons", tags=["Hackathons"])


async def _hackathon_response(db: AsyncSession, h: Hackathon, user: Account) -> HackathonResponse:
    return HackathonResponse(
        id=h.id,
        title=h.title,
        description=h.description,
        problem_statement=h.problem_statement,
        challenge=h.challenge,
        difficulty=h.difficulty,
        topic=h.topic,
        class_id=h.class_id,
        teacher_id=h.teacher_id,
        starts_at=h.starts_at,
        ends_at=h.ends_at,
        deadline=h.deadline,
        max_participants=h.max_participants,
        min_team_size=h.min_team_size,
        max_team_size=h.max_team_size,
        accepting_submissions=h.accepting_submissions,
        status=h.status,
        participants=await service.count_participants(db, h.id),
        is_joined=await service.is_participant(db, h.id, user.id),
    )


async def _team_response(db: AsyncSession, team: Team, user: Account) -> TeamResponse:
    members = await service.team_members(db, team.id)
    return TeamResponse(
        id=team.id,
        hackathon_id=team.hackathon_id,
        name=team.name,
        problem_statement=team.problem_statement,
        leader_id=team.leader_id,
        members=[
            TeamMemberResponse(id=m.id, name=m.name, email=m.email, is_leader=m.id == team.leader_id)
            for m in members
        ],
        status=team.status,
        submission_link=team.submission_link,
        submission_text=team.submission_text,
        submission_files=list(team.submission_files or []),
        submitted_at=team.submitted_at,
        score=team.score,
        feedback=team.feedback,
        is_my_team=any(m.id == user.id for m in members),
    )


async def _team_in_hackathon(db: AsyncSession, hackathon_id: int, team_id: int) -> tuple[Hackathon, Team]:
    hackathon = await service.get_hackathon(db, hackathon_id)
    team = await service.get_team(db, team_id)
    if team.hackathon_id != hackathon.id:
        raise NotFoundError("Team not found")
    return hackathon, team


# --- Hackathons ---


@router.post("", response_model=HackathonResponse, status_code=201)
async def create_hackathon(
    body: HackathonCreateRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> HackathonResponse:
    hackathon = await service.create_hackathon(db, teacher, **body.model_dump())
    response = await _hackathon_response(db, hackathon, teacher)
    await db.commit()
    return response


@router.get("", response_model=list[HackathonResponse])
async def list_hackathons(
    status: str | None = Query(None, pattern="^(upcoming|active|completed)$"),
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[HackathonResponse]:
    return [await _hackathon_response(db, h, user) for h in await service.list_hackathons(db, status)]


@router.get("/{hackathon_id}", response_model=HackathonResponse)
async def get_hackathon(
    hackathon_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> HackathonResponse:
    return await _hackathon_response(db, await service.get_hackathon(db, hackathon_id), user)


@router.patch("/{hackathon_id}", response_model=HackathonResponse)
async def update_hackathon(
    hackathon_id: int,
    body: HackathonUpdateRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> HackathonResponse:
    hackathon = await service.get_hackathon(db, hackathon_id)
    service.ensure_organiser(hackathon, teacher)
    await service.update_hackathon(db, hackathon, **body.model_dump(exclude_unset=True))
    response = await _hackathon_response(db, hackathon, teacher)
    await db.commit()
    return response


@router.post("/{hackathon_id}/join", response_model=HackathonResponse)
async def join_hackathon(
    hackathon_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> HackathonResponse:
    hackathon = await service.get_hackathon(db, hackathon_id)
    await service.join_hackathon(db, hackathon, user)
    response = await _hackathon_response(db, hackathon, user)
    await db.commit()
    return response


@router.post("/{hackathon_id}/toggle-submissions", response_model=HackathonResponse)
async def toggle_submissions(
    hackathon_id: int,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> HackathonResponse:
    hackathon = await service.get_hackathon(db, hackathon_id)
    service.ensure_organiser(hackathon, teacher)
    await service.toggle_submissions(db, hackathon)
    response = await _hackathon_response(db, hackathon, teacher)
    await db.commit()
    return response


@router.get("/{hackathon_id}/submissions", response_model=list[TeamResponse])
async def list_submissions(
    hackathon_id: int,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> list[TeamResponse]:
    hackathon = await service.get_hackathon(db, hackathon_id)
    service.ensure_organiser(hackathon, teacher)
    return [await _team_response(db, t, teacher) for t in await service.list_submissions(db, hackathon.id)]


# --- Teams ---


@router.post("/{hackathon_id}/teams", response_model=TeamResponse, status_code=201)
async def create_team(
    hackathon_id: int,
    body: TeamCreateRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> TeamResponse:
    """Create a team led by the caller. Size must fit the hackathon's team bounds."""
    hackathon = await service.get_hackathon(db, hackathon_id)
    team = await service.create_team(
        db, redis, hackathon, user, body.name, body.problem_statement, [str(e) for e in body.member_emails]
    )
    response = await _team_response(db, team, user)
    await db.commit()
    return response


@router.get("/{hackathon_id}/teams", response_model=list[TeamResponse])
async def list_teams(
    hackathon_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[TeamResponse]:
    await service.get_hackathon(db, hackathon_id)
    return [await _team_response(db, t, user) for t in await service.list_teams(db, hackathon_id)]


@router.get("/{hackathon_id}/my-team", response_model=TeamResponse | None)
async def my_team(
    hackathon_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> TeamResponse | None:
    await service.get_hackathon(db, hackathon_id)
    team = await service.get_my_team(db, hackathon_id, user.id)
    return await _team_response(db, team, user) if team is not None else None


@router.patch("/{hackathon_id}/teams/{team_id}", response_model=TeamResponse)
async def update_team(
    hackathon_id: int,
    team_id: int,
    body: TeamUpdateRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> TeamResponse:
    _, team = await _team_in_hackathon(db, hackathon_id, team_id)
    await service.ensure_member(db, team, user)
    await service.update_team(db, team, body.name, body.problem_statement)
    response = await _team_response(db, team, user)
    await db.commit()
    return response


@router.delete("/{hackathon_id}/teams/{team_id}", status_code=204)
async def delete_team(
    hackathon_id: int,
    team_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> None:
    hackathon, team = await _team_in_hackathon(db, hackathon_id, team_id)
    await service.ensure_member(db, team, user)
    await service.delete_team(db, redis, hackathon, team)
    await db.commit()


@router.post("/{hackathon_id}/teams/{team_id}/members", response_model=TeamResponse)
async def add_member(
    hackathon_id: int,
    team_id: int,
    body: AddMemberRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> TeamResponse:
    hackathon, team = await _team_in_hackathon(db, hackathon_id, team_id)
    await service.ensure_member(db, team, user)
    await service.add_member(db, redis, hackathon, team, str(body.email))
    response = await _team_response(db, team, user)
    await db.commit()
    return response


@router.delete("/{hackathon_id}/teams/{team_id}/members/{account_id}", response_model=TeamResponse)
async def remove_member(
    hackathon_id: int,
    team_id: int,
    account_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> TeamResponse:
    hackathon, team = await _team_in_hackathon(db, hackathon_id, team_id)
    await service.ensure_member(db, team, user)
    await service.remove_member(db, redis, hackathon, team, account_id)
    response = await _team_response(db, team, user)
    await db.commit()
    return response


@router.post("/{hackathon_id}/teams/{team_id}/progress", response_model=ProgressUpdateResponse, status_code=201)
async def post_progress(
    hackathon_id: int,
    team_id: int,
    body: ProgressUpdateRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProgressUpdateResponse:
    _, team = await _team_in_hackathon(db, hackathon_id, team_id)
    await service.ensure_member(db, team, user)
    update = await service.post_progress(db, team, user, body.message)
    response = ProgressUpdateResponse(
        id=update.id, author_id=update.author_id, message=update.message, created_at=update.created_at
    )
    await db.commit()
    return response


@router.get("/{hackathon_id}/teams/{team_id}/progress", response_model=list[ProgressUpdateResponse])
async def list_progress(
    hackathon_id: int,
    team_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[ProgressUpdateResponse]:
    hackathon, team = await _team_in_hackathon(db, hackathon_id, team_id)
    if hackathon.teacher_id != user.id:
        await service.ensure_member(db, team, user)
    return [
        ProgressUpdateResponse(id=u.id, author_id=u.author_id, message=u.message, created_at=u.created_at)
        for u in await service.list_progress(db, team.id)
    ]


@router.post("/{hackathon_id}/teams/{team_id}/submit", response_model=TeamResponse)
async def submit_project(
    hackathon_id: int,
    team_id: int,
    body: SubmitProjectRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> TeamResponse:
    """Submit the team's project. 400 when the hackathon is not accepting submissions."""
    hackathon, team = await _team_in_hackathon(db, hackathon_id, team_id)
    await service.ensure_member(db, team, user)
    files = [f.model_dump(by_alias=True) for f in body.files]
    await service.submit_project(db, hackathon, team, body.link, body.text, files)
    response = await _team_response(db, team, user)
    await db.commit()
    return response


@router.patch("/{hackathon_id}/teams/{team_id}/submission", response_model=TeamResponse)
async def amend_submission(
    hackathon_id: int,
    team_id: int,
    body: AmendSubmissionRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> TeamResponse:
    """Amend the submission. Members and the organising teacher may amend; graded stays graded."""
    hackathon, team = await _team_in_hackathon(db, hackathon_id, team_id)
    if hackathon.teacher_id != user.id:
        await service.ensure_member(db, team, user)
    await service.amend_submission(
        db,
        team,
        link=body.link,
        text=body.text,
        add_files=[f.model_dump(by_alias=True) for f in body.add_files],
        remove_files=body.remove_files,
    )
    response = await _team_response(db, team, user)
    await db.commit()
    return response


@router.post("/{hackathon_id}/teams/{team_id}/grade", response_model=TeamResponse)
async def grade_team(
    hackathon_id: int,
    team_id: int,
    body: GradeTeamRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> TeamResponse:
    hackathon, team = await _team_in_hackathon(db, hackathon_id, team_id)
    service.ensure_organiser(hackathon, teacher)
    await service.grade_team(db, redis, hackathon, team, body.score, body.feedback)
    response = await _team_response(db, team, teacher)
    await db.commit()
    return response


# --- Polls ---


@router.post("/{hackathon_id}/polls", status_code=201)
async def create_poll(
    hackathon_id: int,
    body: PollCreateRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    hackathon = await service.get_hackathon(db, hackathon_id)
    service.ensure_organiser(hackathon, teacher)
    poll = await service.create_poll(db, hackathon, teacher, body.question, body.options)
    response = await service.poll_results(db, poll, teacher.id)
    await db.commit()
    return response


@router.get("/{hackathon_id}/polls")
async def list_polls(
    hackathon_id: int,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[dict[str, Any]]:
    await service.get_hackathon(db, hackathon_id)
    return [await service.poll_results(db, p, user.id) for p in await service.list_polls(db, hackathon_id)]


@router.post("/{hackathon_id}/polls/{poll_id}/vote")
async def vote(
    hackathon_id: int,
    poll_id: int,
    body: VoteRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """One vote per account; a second vote is rejected with 400."""
    poll = await service.get_poll(db, poll_id)
    if poll.hackathon_id != hackathon_id:
        raise NotFoundError("Poll not found")
    await service.vote(db, poll, user, body.option_index)
    response = await service.poll_results(db, poll, user.id)
    await db.commit()
    return response
