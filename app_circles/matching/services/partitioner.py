"""
Greedy partitioning of one bucket into candidate groups.

Members are ordered by priority and cut into consecutive windows of
``max_size``. A trailing window smaller than ``min_size`` is dropped, and so
is any window whose age gap exceeds the life stage's threshold. Dropped
members wait for the next run; they are never redistributed into other
windows.
"""

import logging
from dataclasses import dataclass, field
from operator import itemgetter
from typing import List, Protocol

from app_circles.matching.services.age_model import AgeModel
from app_circles.schemas.group import LifeStage
from app_circles.schemas.matching import MatchingConfig
from app_circles.schemas.profile import UserRecord

logger = logging.getLogger(__name__)


@dataclass
class CandidateGroup:
    """A window that passed size and gap checks. Not yet persisted."""

    sequence: int
    life_stage: LifeStage
    members: List[UserRecord]
    priorities: List[float] = field(default_factory=list)
    gap_months: float = 0.0

    @property
    def member_ids(self) -> List[str]:
        return [member.id for member in self.members]


class PartitionStrategy(Protocol):
    def partition(self, users: List[UserRecord], life_stage: LifeStage) -> List[CandidateGroup]:
        ...


class GroupPartitioner:
    """Sorted, consecutive, non-rebalancing chunking."""

    def __init__(self, age_model: AgeModel, config: MatchingConfig):
        self._age_model = age_model
        self._config = config

    def partition(self, users: List[UserRecord], life_stage: LifeStage) -> List[CandidateGroup]:
        config = self._config
        max_gap = config.max_gap_months[life_stage]

        ranked = sorted(
            ((self._age_model.priority(user.primary_child, life_stage), user) for user in users),
            key=itemgetter(0),
        )

        candidates: List[CandidateGroup] = []
        for start in range(0, len(ranked), config.max_size):
            window = ranked[start:start + config.max_size]

            if len(window) < config.min_size:
                logger.info(
                    f"{life_stage.value}: leaving {len(window)} users unmatched "
                    f"(below minimum group size {config.min_size})"
                )
                continue

            priorities = [priority for priority, _ in window]
            gap = self._age_model.gap_in_months(priorities, life_stage)
            if gap > max_gap:
                logger.info(
                    f"{life_stage.value}: discarding window of {len(window)} users, "
                    f"age gap {gap:.2f} months exceeds {max_gap}"
                )
                continue

            candidates.append(
                CandidateGroup(
                    sequence=len(candidates) + 1,
                    life_stage=life_stage,
                    members=[user for _, user in window],
                    priorities=priorities,
                    gap_months=gap,
                )
            )

        return candidates
