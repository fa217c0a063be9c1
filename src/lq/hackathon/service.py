"""Hackathons, teams, submissions, grading and polls.

Team authorization is one rule: any listed member (the leader included) may
edit the team, change its roster, post progress, submit, amend and delete.
Teachers may additionally amend submissions and grade them.

Team status moves forward only::

    not_started -> in_progress -> submitted -> graded

Amending a graded submission keeps it graded. Grade XP is held per
membership, so a member's hackathon XP always matches the current team score.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import as_utc, utcnow
from lq.db.base import insert_for
from lq.db.models import (
    Account,
    Hackathon,
    HackathonParticipant,
    Poll,
    PollVote,
    Team,
    TeamMember,
    TeamProgressUpdate,
)
from lq.errors import (
    AlreadyInTeamError,
    ConflictError,
    DomainError,
    ForbiddenError,
    HackathonError,
    NotFoundError,
    NotTeamMemberError,
    SubmissionsClosedError,
    TeamSizeError,
)
from lq.ledger.badge_service import award_badge, evaluate_auto_badges
from lq.ledger.xp_service import adjust_xp
from lq.notifications.service import create_notification

logger = structlog.get_logger()

DIFFICULTIES = ("easy", "medium", "hard")


def check_team_size(hackathon: Hackathon, size: int) -> None:
    """Raise TeamSizeError unless ``min_team_size <= size <= max_team_size``."""
    if size < hackathon.min_team_size or size > hackathon.max_team_size:
        raise TeamSizeError(
            f"Team size must be between {hackathon.min_team_size} and {hackathon.max_team_size}"
        )


def next_status_after_amend(current: str) -> str:
    return "graded" if current == "graded" else "submitted"


# --- Hackathons ---


async def create_hackathon(db: AsyncSession, teacher: Account, **fields: Any) -> Hackathon:
    if fields.get("min_team_size", 1) > fields.get("max_team_size", 4):
        raise DomainError("min_team_size cannot exceed max_team_size")
    if fields.get("difficulty", "medium") not in DIFFICULTIES:
        raise DomainError(f"Difficulty must be one of {', '.join(DIFFICULTIES)}")

    hackathon = Hackathon(teacher_id=teacher.id, **fields)
    starts_at = fields.get("starts_at")
    hackathon.status = "active" if starts_at is None or as_utc(starts_at) <= utcnow() else "upcoming"
    db.add(hackathon)
    await db.flush()
    logger.info("hackathon_created", hackathon_id=hackathon.id, teacher_id=teacher.id)
    return hackathon


async def get_hackathon(db: AsyncSession, hackathon_id: int) -> Hackathon:
    hackathon = await db.get(Hackathon, hackathon_id)
    if hackathon is None:
        raise NotFoundError("Hackathon not found")
    return hackathon


def ensure_organiser(hackathon: Hackathon, user: Account) -> None:
    if hackathon.teacher_id != user.id:
        raise ForbiddenError("Only the organising teacher can do this")


async def list_hackathons(db: AsyncSession, status: str | None = None) -> list[Hackathon]:
    stmt = select(Hackathon)
    if status is not None:
        stmt = stmt.where(Hackathon.status == status)
    result = await db.execute(stmt.order_by(Hackathon.created_at.desc(), Hackathon.id.desc()))
    return list(result.scalars().all())


async def update_hackathon(db: AsyncSession, hackathon: Hackathon, **fields: Any) -> Hackathon:
    for key, value in fields.items():
        if value is not None:
            setattr(hackathon, key, value)
    if hackathon.min_team_size > hackathon.max_team_size:
        raise DomainError("min_team_size cannot exceed max_team_size")
    await db.flush()
    return hackathon


async def count_participants(db: AsyncSession, hackathon_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(HackathonParticipant).where(HackathonParticipant.hackathon_id == hackathon_id)
    )
    return result.scalar_one()


async def is_participant(db: AsyncSession, hackathon_id: int, account_id: int) -> bool:
    result = await db.execute(
        select(HackathonParticipant.id).where(
            HackathonParticipant.hackathon_id == hackathon_id,
            HackathonParticipant.account_id == account_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _add_participant(db: AsyncSession, hackathon_id: int, account_id: int) -> bool:
    stmt = (
        insert_for(db, HackathonParticipant)
        .values(hackathon_id=hackathon_id, account_id=account_id, joined_at=utcnow())
        .on_conflict_do_nothing(index_elements=["hackathon_id", "account_id"])
    )
    return (await db.execute(stmt)).rowcount > 0


async def join_hackathon(db: AsyncSession, hackathon: Hackathon, account: Account) -> None:
    """Register as participant. 400 if already joined or the hackathon is full."""
    if hackathon.status == "completed":
        raise HackathonError("Hackathon has ended")
    if await is_participant(db, hackathon.id, account.id):
        raise HackathonError("Already joined this hackathon")
    if hackathon.max_participants is not None:
        if await count_participants(db, hackathon.id) >= hackathon.max_participants:
            raise HackathonError("Hackathon is full")
    if not await _add_participant(db, hackathon.id, account.id):
        raise HackathonError("Already joined this hackathon")
    logger.info("hackathon_joined", hackathon_id=hackathon.id, account_id=account.id)


async def toggle_submissions(db: AsyncSession, hackathon: Hackathon) -> Hackathon:
    hackathon.accepting_submissions = not hackathon.accepting_submissions
    await db.flush()
    logger.info("hackathon_submissions_toggled", hackathon_id=hackathon.id, accepting=hackathon.accepting_submissions)
    return hackathon


# --- Teams ---


async def get_team(db: AsyncSession, team_id: int) -> Team:
    team = await db.get(Team, team_id)
    if team is None:
        raise NotFoundError("Team not found")
    return team


async def member_ids(db: AsyncSession, team_id: int) -> list[int]:
    result = await db.execute(
        select(TeamMember.account_id).where(TeamMember.team_id == team_id).order_by(TeamMember.id)
    )
    return [row[0] for row in result]


async def team_members(db: AsyncSession, team_id: int) -> list[Account]:
    result = await db.execute(
        select(Account)
        .join(TeamMember, TeamMember.account_id == Account.id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.id)
    )
    return list(result.scalars().all())


async def ensure_member(db: AsyncSession, team: Team, user: Account) -> None:
    if user.id not in await member_ids(db, team.id):
        raise NotTeamMemberError("Only team members can do this")


async def _resolve_students(db: AsyncSession, emails: list[str]) -> list[Account]:
    accounts = []
    for email in dict.fromkeys(e.strip().lower() for e in emails if e.strip()):
        result = await db.execute(select(Account).where(func.lower(Account.email) == email))
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundError(f"No account for {email}")
        if account.role != "student":
            raise DomainError(f"{email} is not a student")
        accounts.append(account)
    return accounts


async def _insert_member(db: AsyncSession, team: Team, account: Account) -> None:
    stmt = (
        insert_for(db, TeamMember)
        .values(team_id=team.id, hackathon_id=team.hackathon_id, account_id=account.id, joined_at=utcnow())
        .on_conflict_do_nothing(index_elements=["hackathon_id", "account_id"])
    )
    if (await db.execute(stmt)).rowcount == 0:
        raise AlreadyInTeamError(f"{account.email} is already in a team for this hackathon")
    await _add_participant(db, team.hackathon_id, account.id)


async def create_team(
    db: AsyncSession,
    redis: Any | None,
    hackathon: Hackathon,
    leader: Account,
    name: str,
    problem_statement: str | None = None,
    member_emails: list[str] | None = None,
) -> Team:
    """Create a team with the caller as leader and first member."""
    if hackathon.status == "completed":
        raise HackathonError("Hackathon has ended")
    invited = [a for a in await _resolve_students(db, member_emails or []) if a.id != leader.id]
    check_team_size(hackathon, 1 + len(invited))

    team = Team(hackathon_id=hackathon.id, name=name, problem_statement=problem_statement, leader_id=leader.id)
    db.add(team)
    await db.flush()

    for account in [leader, *invited]:
        await _insert_member(db, team, account)
    await db.flush()

    for account in [leader, *invited]:
        await evaluate_auto_badges(db, redis, account)
    for account in invited:
        await create_notification(
            db, account.id, "hackathon", "team_invite",
            f'You were added to team "{team.name}"', hackathon.title,
            action_url=f"/hackathons/{hackathon.id}", metadata={"team_id": team.id}, redis=redis,
        )

    logger.info("team_created", team_id=team.id, hackathon_id=hackathon.id, size=1 + len(invited))
    return team


async def update_team(
    db: AsyncSession,
    team: Team,
    name: str | None = None,
    problem_statement: str | None = None,
) -> Team:
    if name is not None:
        team.name = name
    if problem_statement is not None:
        team.problem_statement = problem_statement
    team.updated_at = utcnow()
    await db.flush()
    return team


async def add_member(
    db: AsyncSession,
    redis: Any | None,
    hackathon: Hackathon,
    team: Team,
    email: str,
) -> Account:
    (account,) = await _resolve_students(db, [email])
    current = await member_ids(db, team.id)
    if account.id in current:
        raise AlreadyInTeamError(f"{account.email} is already in this team")
    check_team_size(hackathon, len(current) + 1)

    await _insert_member(db, team, account)
    team.updated_at = utcnow()
    await db.flush()
    await evaluate_auto_badges(db, redis, account)
    logger.info("team_member_added", team_id=team.id, account_id=account.id)
    return account


async def _memberships(db: AsyncSession, team_id: int) -> list[TeamMember]:
    result = await db.execute(select(TeamMember).where(TeamMember.team_id == team_id).order_by(TeamMember.id))
    return list(result.scalars().all())


async def _settle_member_xp(
    db: AsyncSession,
    redis: Any | None,
    hackathon: Hackathon,
    team: Team,
    membership: TeamMember,
    target: int,
) -> int:
    """Move a member's hackathon XP from what they were awarded to ``target``."""
    delta = target - membership.xp_awarded
    if delta:
        await adjust_xp(
            db, redis, membership.account_id, delta, "hackathon",
            reason=f"Hackathon: {hackathon.title}", source_id=str(team.id),
        )
        membership.xp_awarded = target
    return delta


async def remove_member(
    db: AsyncSession,
    redis: Any | None,
    hackathon: Hackathon,
    team: Team,
    account_id: int,
) -> None:
    """Remove a member; XP they were awarded for this team's grade is taken back."""
    if account_id == team.leader_id:
        raise DomainError("The team leader cannot be removed")
    memberships = {m.account_id: m for m in await _memberships(db, team.id)}
    membership = memberships.get(account_id)
    if membership is None:
        raise NotFoundError("Not a member of this team")
    check_team_size(hackathon, len(memberships) - 1)

    await _settle_member_xp(db, redis, hackathon, team, membership, 0)
    await db.delete(membership)
    team.updated_at = utcnow()
    await db.flush()
    logger.info("team_member_removed", team_id=team.id, account_id=account_id)


async def delete_team(db: AsyncSession, redis: Any | None, hackathon: Hackathon, team: Team) -> None:
    """Delete the team, its updates and memberships; drop participants left in no team.

    XP awarded for the team's grade is taken back from every member.
    """
    memberships = await _memberships(db, team.id)
    for membership in memberships:
        await _settle_member_xp(db, redis, hackathon, team, membership, 0)
    members = [m.account_id for m in memberships]
    await db.execute(delete(TeamProgressUpdate).where(TeamProgressUpdate.team_id == team.id))
    await db.execute(delete(TeamMember).where(TeamMember.team_id == team.id))
    if members:
        await db.execute(
            delete(HackathonParticipant).where(
                HackathonParticipant.hackathon_id == team.hackathon_id,
                HackathonParticipant.account_id.in_(members),
            )
        )
    await db.delete(team)
    await db.flush()
    logger.info("team_deleted", team_id=team.id, hackathon_id=team.hackathon_id)


async def list_teams(db: AsyncSession, hackathon_id: int) -> list[Team]:
    result = await db.execute(select(Team).where(Team.hackathon_id == hackathon_id).order_by(Team.id))
    return list(result.scalars().all())


async def get_my_team(db: AsyncSession, hackathon_id: int, account_id: int) -> Team | None:
    result = await db.execute(
        select(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.hackathon_id == hackathon_id, TeamMember.account_id == account_id)
    )
    return result.scalar_one_or_none()


# --- Progress and submissions ---


async def post_progress(db: AsyncSession, team: Team, author: Account, message: str) -> TeamProgressUpdate:
    update = TeamProgressUpdate(team_id=team.id, author_id=author.id, message=message)
    db.add(update)
    if team.status == "not_started":
        team.status = "in_progress"
    team.updated_at = utcnow()
    await db.flush()
    return update


async def list_progress(db: AsyncSession, team_id: int) -> list[TeamProgressUpdate]:
    result = await db.execute(
        select(TeamProgressUpdate)
        .where(TeamProgressUpdate.team_id == team_id)
        .order_by(TeamProgressUpdate.created_at.desc(), TeamProgressUpdate.id.desc())
    )
    return list(result.scalars().all())


async def submit_project(
    db: AsyncSession,
    hackathon: Hackathon,
    team: Team,
    link: str | None,
    text: str | None,
    files: list[dict[str, str]] | None = None,
) -> Team:
    if not hackathon.accepting_submissions:
        raise SubmissionsClosedError("Hackathon is not accepting submissions")
    if not link and not text and not files:
        raise DomainError("Submission needs a link, text or files")
    if team.status == "graded":
        raise ConflictError("Team is already graded; amend the submission instead")

    team.submission_link = link
    team.submission_text = text
    team.submission_files = list(files or [])
    team.submitted_at = utcnow()
    team.updated_at = team.submitted_at
    team.status = "submitted"
    await db.flush()
    logger.info("team_submitted", team_id=team.id, hackathon_id=hackathon.id)
    return team


async def amend_submission(
    db: AsyncSession,
    team: Team,
    link: str | None = None,
    text: str | None = None,
    add_files: list[dict[str, str]] | None = None,
    remove_files: list[str] | None = None,
) -> Team:
    """Update link/text, append files and drop files by URL. A graded team stays graded."""
    if link is not None:
        team.submission_link = link
    if text is not None:
        team.submission_text = text

    files = list(team.submission_files or [])
    if remove_files:
        dropped = set(remove_files)
        files = [f for f in files if f.get("fileUrl") not in dropped]
    files.extend(add_files or [])
    team.submission_files = files

    team.status = next_status_after_amend(team.status)
    team.updated_at = utcnow()
    if team.submitted_at is None:
        team.submitted_at = team.updated_at
    await db.flush()
    logger.info("team_submission_amended", team_id=team.id, status=team.status)
    return team


async def grade_team(
    db: AsyncSession,
    redis: Any | None,
    hackathon: Hackathon,
    team: Team,
    score: int,
    feedback: str | None = None,
) -> Team:
    """Grade a team; each current member's XP moves by ``score - member.xp_awarded``.

    A member added after an earlier grade gets the full score; members who
    were removed had their award taken back when they left.
    """
    if score < 0:
        raise DomainError("Score must be non-negative")

    team.score = score
    team.feedback = feedback
    team.status = "graded"
    team.graded_at = utcnow()
    team.updated_at = team.graded_at
    await db.flush()

    for membership in await _memberships(db, team.id):
        delta = await _settle_member_xp(db, redis, hackathon, team, membership, score)
        account_id = membership.account_id
        if hackathon.difficulty == "hard":
            await award_badge(db, redis, account_id, "problem_solver", awarded_by=hackathon.teacher_id)
        await create_notification(
            db, account_id, "hackathon", "team_graded",
            f'Team "{team.name}" was graded', f"Score: {score}",
            action_url=f"/hackathons/{hackathon.id}", metadata={"team_id": team.id, "score": score}, redis=redis,
        )
        await evaluate_auto_badges(db, redis, await db.get(Account, account_id))
        logger.info("team_member_graded", team_id=team.id, account_id=account_id, xp_delta=delta)

    await db.flush()
    logger.info("team_graded", team_id=team.id, score=score)
    return team


async def list_submissions(db: AsyncSession, hackathon_id: int) -> list[Team]:
    result = await db.execute(
        select(Team)
        .where(Team.hackathon_id == hackathon_id, Team.submitted_at.is_not(None))
        .order_by(Team.submitted_at.desc(), Team.id)
    )
    return list(result.scalars().all())


# --- Polls ---


async def create_poll(db: AsyncSession, hackathon: Hackathon, teacher: Account, question: str, options: list[str]) -> Poll:
    cleaned = [o.strip() for o in options if o.strip()]
    if len(cleaned) < 2:
        raise DomainError("A poll needs at least two options")
    poll = Poll(hackathon_id=hackathon.id, question=question, options=cleaned, created_by=teacher.id)
    db.add(poll)
    await db.flush()
    return poll


async def get_poll(db: AsyncSession, poll_id: int) -> Poll:
    poll = await db.get(Poll, poll_id)
    if poll is None:
        raise NotFoundError("Poll not found")
    return poll


async def vote(db: AsyncSession, poll: Poll, account: Account, option_index: int) -> None:
    if not 0 <= option_index < len(poll.options):
        raise DomainError("Invalid option")
    stmt = (
        insert_for(db, PollVote)
        .values(poll_id=poll.id, account_id=account.id, option_index=option_index, voted_at=utcnow())
        .on_conflict_do_nothing(index_elements=["poll_id", "account_id"])
    )
    if (await db.execute(stmt)).rowcount == 0:
        raise HackathonError("Already voted in this poll")


async def poll_results(db: AsyncSession, poll: Poll, account_id: int | None = None) -> dict[str, Any]:
    counts = dict(
        (
            await db.execute(
                select(PollVote.option_index, func.count(PollVote.id))
                .where(PollVote.poll_id == poll.id)
                .group_by(PollVote.option_index)
            )
        ).all()
    )
    my_vote = None
    if account_id is not None:
        my_vote = (
            await db.execute(
                select(PollVote.option_index).where(PollVote.poll_id == poll.id, PollVote.account_id == account_id)
            )
        ).scalar_one_or_none()
    return {
        "id": poll.id,
        "question": poll.question,
        "options": [{"text": text, "votes": counts.get(i, 0)} for i, text in enumerate(poll.options)],
        "totalVotes": sum(counts.values()),
        "myVote": my_vote,
    }


async def list_polls(db: AsyncSession, hackathon_id: int) -> list[Poll]:
    result = await db.execute(select(Poll).where(Poll.hackathon_id == hackathon_id).order_by(Poll.id))
    return list(result.scalars().all())
