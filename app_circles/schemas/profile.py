"""
Profile records as seen by the matching engine.

Only the matching-relevant slice of a profile document is modelled here;
onboarding fields stored alongside it are ignored at the repository boundary.
"""

from datetime import datetime
from typing import Optional, List, Tuple, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Location(BaseModel):
    """City + region pair used as the geographic half of a bucket key."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    city: str = Field(..., min_length=1)
    region_code: str = Field(..., min_length=1, alias="regionCode")

    @property
    def key(self) -> Tuple[str, str]:
        return (self.city, self.region_code)


class Child(BaseModel):
    """A child entry; only the first child of a profile is used for matching."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    birth_year: int = Field(..., ge=1900, le=2200, alias="birthYear")
    birth_month: Optional[int] = Field(None, ge=1, le=12, alias="birthMonth")
    gender: Optional[str] = Field(None, pattern="^(boy|girl|unknown)$")


class UserRecord(BaseModel):
    """
    Profile document used by the matching engine.

    A user is in the eligible pool iff ``eligible_for_matching`` is true and
    ``group_id`` is None.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    email: Optional[str] = None
    location: Optional[Location] = None
    children: List[Child] = Field(default_factory=list)
    eligible_for_matching: bool = Field(False, alias="matchingEligible")
    group_id: Optional[str] = Field(None, alias="groupId")
    matched_at: Optional[datetime] = Field(None, alias="matchedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        # Seeded profiles use session-id strings, older ones ObjectIds
        return str(value)

    @property
    def primary_child(self) -> Optional[Child]:
        return self.children[0] if self.children else None

    @property
    def in_pool(self) -> bool:
        return self.eligible_for_matching and self.group_id is None

    @property
    def display_name(self) -> str:
        """Name shown in group rosters (email local part, as collected at onboarding)."""
        if self.email:
            return self.email.split("@")[0]
        return "Dad"
