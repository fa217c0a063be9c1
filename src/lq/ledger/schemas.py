"""Request/response models for ledger endpoints.

Request bodies accept the camelCase field names used by the web client
(``xpToAdd``, ``badgeId``, ``studentEmail``) as well as snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- XP ---


class AwardXPRequest(_CamelModel):
    email: EmailStr
    xp_to_add: int = Field(..., alias="xpToAdd", gt=0)
    reason: str | None = Field(None, max_length=256)


class AdjustXPRequest(_CamelModel):
    xp_to_add: int = Field(..., alias="xpToAdd")
    reason: str | None = Field(None, max_length=256)


class ActivityRequest(_CamelModel):
    source: Literal["lesson", "quiz", "battle", "challenge"]
    source_id: str = Field(..., alias="sourceId", min_length=1, max_length=128)
    xp: int = Field(0, ge=0, le=10_000)
    game_points: int = Field(0, alias="gamePoints", ge=0, le=100_000)
    topic: str | None = Field(None, max_length=128)
    progress: int | None = Field(None, ge=0, le=100)


class ActivityResponse(_CamelModel):
    recorded: bool
    badges_awarded: list[str] = Field(serialization_alias="badgesAwarded")
    streak_changed: bool = Field(serialization_alias="streakChanged")
    user: dict


class ProgressRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=128)
    percentage: int = Field(..., ge=0, le=100)


class ProfileUpdateRequest(_CamelModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    photo_url: str | None = Field(None, alias="photoUrl", max_length=2048)


class ThemeRequest(BaseModel):
    theme: str = Field(..., min_length=1, max_length=32)


class LedgerEntryResponse(BaseModel):
    id: int
    currency: str
    amount: int
    balance_after: int
    source: str
    source_id: str | None = None
    reason: str | None = None
    created_at: datetime


class LedgerHistoryResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    total: int
    page: int
    per_page: int


class LevelEntry(BaseModel):
    level: int
    xp_required: int


# --- Rewards / badges ---


class AwardPointsRequest(_CamelModel):
    student_id: int | None = Field(None, alias="studentId")
    student_email: EmailStr | None = Field(None, alias="studentEmail")
    points: int = Field(..., gt=0)
    reason: str | None = Field(None, max_length=256)

    @model_validator(mode="after")
    def require_target(self) -> AwardPointsRequest:
        if self.student_id is None and self.student_email is None:
            raise ValueError("studentId or studentEmail is required")
        return self


class AwardPointsResponse(BaseModel):
    id: int
    name: str
    email: str
    xp: int
    level: int
    coins: int


class AwardBadgeRequest(_CamelModel):
    badge_id: str = Field(..., alias="badgeId", min_length=1, max_length=64)


class BadgeDefinitionResponse(BaseModel):
    slug: str
    name: str
    description: str
    category: str
    rarity: str


class UnlockRewardRequest(_CamelModel):
    reward_id: str = Field(..., alias="rewardId", min_length=1, max_length=64)


# --- Store ---


class StoreItem(BaseModel):
    id: str
    name: str
    cost: int
    type: str
    category: str
    description: str
    owned: bool = False


class PurchaseRequest(_CamelModel):
    item_id: str = Field(..., alias="itemId", min_length=1, max_length=64)


class PurchaseResponse(_CamelModel):
    item_id: str = Field(serialization_alias="itemId")
    coins: int
    unlocked_rewards: list[str] = Field(serialization_alias="unlockedRewards")
