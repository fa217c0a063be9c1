"""Request/response models for hackathon endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HackathonCreateRequest(_CamelModel):
    title: str = Field(..., min_length=1, max_length=256)
    description: str | None = Field(None, max_length=10_000)
    problem_statement: str | None = Field(None, alias="problemStatement", max_length=10_000)
    challenge: str | None = Field(None, max_length=10_000)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    topic: str | None = Field(None, max_length=128)
    class_id: int | None = Field(None, alias="classId")
    starts_at: datetime | None = Field(None, alias="startsAt")
    ends_at: datetime | None = Field(None, alias="endsAt")
    deadline: datetime | None = None
    max_participants: int | None = Field(None, alias="maxParticipants", ge=1)
    min_team_size: int = Field(1, alias="minTeamSize", ge=1, le=50)
    max_team_size: int = Field(4, alias="maxTeamSize", ge=1, le=50)


class HackathonUpdateRequest(_CamelModel):
    title: str | None = Field(None, min_length=1, max_length=256)
    description: str | None = Field(None, max_length=10_000)
    problem_statement: str | None = Field(None, alias="problemStatement", max_length=10_000)
    challenge: str | None = Field(None, max_length=10_000)
    difficulty: Literal["easy", "medium", "hard"] | None = None
    status: Literal["upcoming", "active", "completed"] | None = None
    deadline: datetime | None = None
    max_participants: int | None = Field(None, alias="maxParticipants", ge=1)
    min_team_size: int | None = Field(None, alias="minTeamSize", ge=1, le=50)
    max_team_size: int | None = Field(None, alias="maxTeamSize", ge=1, le=50)


class HackathonResponse(_CamelModel):
    id: int
    title: str
    description: str | None = None
    problem_statement: str | None = Field(None, serialization_alias="problemStatement")
    challenge: str | None = None
    difficulty: str
    topic: str | None = None
    class_id: int | None = Field(None, serialization_alias="classId")
    teacher_id: int = Field(serialization_alias="teacherId")
    starts_at: datetime | None = Field(None, serialization_alias="startsAt")
    ends_at: datetime | None = Field(None, serialization_alias="endsAt")
    deadline: datetime | None = None
    max_participants: int | None = Field(None, serialization_alias="maxParticipants")
    min_team_size: int = Field(serialization_alias="minTeamSize")
    max_team_size: int = Field(serialization_alias="maxTeamSize")
    accepting_submissions: bool = Field(serialization_alias="acceptingSubmissions")
    status: str
    participants: int = 0
    is_joined: bool = Field(False, serialization_alias="isJoined")


class SubmissionFile(_CamelModel):
    file_name: str = Field(..., alias="fileName", min_length=1, max_length=256)
    file_url: str = Field(..., alias="fileUrl", min_length=1, max_length=2048)


class TeamCreateRequest(_CamelModel):
    name: str = Field(..., min_length=1, max_length=128)
    problem_statement: str | None = Field(None, alias="problemStatement", max_length=10_000)
    member_emails: list[EmailStr] = Field(default_factory=list, alias="memberEmails", max_length=50)


class TeamUpdateRequest(_CamelModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    problem_statement: str | None = Field(None, alias="problemStatement", max_length=10_000)


class AddMemberRequest(BaseModel):
    email: EmailStr


class TeamMemberResponse(_CamelModel):
    id: int
    name: str
    email: str
    is_leader: bool = Field(False, serialization_alias="isLeader")


class TeamResponse(_CamelModel):
    id: int
    hackathon_id: int = Field(serialization_alias="hackathonId")
    name: str
    problem_statement: str | None = Field(None, serialization_alias="problemStatement")
    leader_id: int = Field(serialization_alias="leaderId")
    members: list[TeamMemberResponse]
    status: str
    submission_link: str | None = Field(None, serialization_alias="submissionLink")
    submission_text: str | None = Field(None, serialization_alias="submissionText")
    submission_files: list[dict] = Field(default_factory=list, serialization_alias="submissionFiles")
    submitted_at: datetime | None = Field(None, serialization_alias="submittedAt")
    score: int | None = None
    feedback: str | None = None
    is_my_team: bool = Field(False, serialization_alias="isMyTeam")


class SubmitProjectRequest(_CamelModel):
    link: str | None = Field(None, max_length=2048)
    text: str | None = Field(None, max_length=50_000)
    files: list[SubmissionFile] = Field(default_factory=list, max_length=50)


class AmendSubmissionRequest(_CamelModel):
    link: str | None = Field(None, max_length=2048)
    text: str | None = Field(None, max_length=50_000)
    add_files: list[SubmissionFile] = Field(default_factory=list, alias="addFiles", max_length=50)
    remove_files: list[str] = Field(default_factory=list, alias="removeFiles", max_length=50)


class GradeTeamRequest(BaseModel):
    score: int = Field(..., ge=0, le=100_000)
    feedback: str | None = Field(None, max_length=10_000)


class ProgressUpdateRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)


class ProgressUpdateResponse(_CamelModel):
    id: int
    author_id: int = Field(serialization_alias="authorId")
    message: str
    created_at: datetime = Field(serialization_alias="createdAt")


class PollCreateRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=512)
    options: list[str] = Field(..., min_length=2, max_length=20)


class VoteRequest(_CamelModel):
    option_index: int = Field(..., alias="optionIndex", ge=0)
