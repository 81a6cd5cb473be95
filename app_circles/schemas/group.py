"""
Group records and their enumerations.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app_circles.schemas.profile import Location


class LifeStage(str, Enum):
    """Developmental bucket derived from the primary child's birth/due date."""

    EXPECTING = "Expecting"
    NEWBORN = "Newborn"
    INFANT = "Infant"
    TODDLER = "Toddler"


class GroupStatus(str, Enum):
    """
    Group lifecycle.

    PENDING -> ACTIVE (approve), PENDING|ACTIVE -> DELETED (delete).
    DELETED is terminal.
    """

    PENDING = "pending"
    ACTIVE = "active"
    DELETED = "deleted"


class Group(BaseModel):
    """
    A circle of matched members.

    ``member_ids`` is fixed at creation. ``notified_member_ids`` only grows.
    ``version`` is bumped on every status write and used for optimistic
    concurrency.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    name: str
    location: Location
    life_stage: LifeStage = Field(..., alias="lifeStage")
    member_ids: List[str] = Field(..., alias="memberIds")
    status: GroupStatus = GroupStatus.PENDING
    notified_member_ids: List[str] = Field(default_factory=list, alias="notifiedMemberIds")
    version: int = 0
    created_at: datetime = Field(..., alias="createdAt")
    approved_at: Optional[datetime] = Field(None, alias="approvedAt")
    notified_at: Optional[datetime] = Field(None, alias="notifiedAt")
    deleted_at: Optional[datetime] = Field(None, alias="deletedAt")

    @field_validator("member_ids")
    @classmethod
    def _members_unique(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("memberIds must not contain duplicates")
        return value

    def unnotified_member_ids(self) -> List[str]:
        """Members that have not yet received the introduction, in roster order."""
        notified = set(self.notified_member_ids)
        return [m for m in self.member_ids if m not in notified]

    def to_document(self) -> Dict[str, Any]:
        """Serialize for MongoDB (camelCase keys, plain enum values)."""
        document = self.model_dump(by_alias=True)
        document["lifeStage"] = self.life_stage.value
        document["status"] = self.status.value
        return document
