"""
Pydantic models for matching configuration and operation results.
"""

from typing import Optional, List, Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app_circles.schemas.group import Group, GroupStatus, LifeStage


class MatchingConfig(BaseModel):
    """Group size bounds and per-life-stage age-gap thresholds."""

    model_config = ConfigDict(frozen=True)

    min_size: int = Field(4, ge=1)
    max_size: int = Field(6, ge=1)
    max_gap_months: Dict[LifeStage, float] = Field(
        default_factory=lambda: {
            LifeStage.EXPECTING: 6,
            LifeStage.NEWBORN: 3,
            LifeStage.INFANT: 6,
            LifeStage.TODDLER: 12,
        }
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "MatchingConfig":
        if self.min_size > self.max_size:
            raise ValueError("min_size cannot exceed max_size")
        missing = [stage.value for stage in LifeStage if stage not in self.max_gap_months]
        if missing:
            raise ValueError(f"max_gap_months missing life stages: {', '.join(missing)}")
        return self


class BucketError(BaseModel):
    """A failure recorded against one (location, life stage) bucket."""

    city: str
    region_code: str
    life_stage: LifeStage
    message: str


class MatchingSummary(BaseModel):
    """Outcome of one matching run."""

    groups_created: List[Group] = Field(default_factory=list)
    users_matched: int = 0
    users_unmatched: int = 0
    per_bucket_errors: List[BucketError] = Field(default_factory=list)
    summary: str = "No unmatched users found"


class DispatchResult(BaseModel):
    """Per-member notification outcome. Dispatchers return these instead of raising."""

    member_id: str
    success: bool
    error: Optional[str] = None


class ApproveResult(BaseModel):
    """Outcome of approving (or resending for) a group."""

    group_id: str
    status: GroupStatus
    notified: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class DeleteResult(BaseModel):
    """Outcome of deleting a group."""

    group_id: str
    returned_to_pool: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
