"""
Life-stage classification and ordering for a member's primary child.

Ages are computed at month granularity: a child born (or due) in March is
treated as born on the 1st of March. A missing birth month defaults to June.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from app_circles.clock import Clock
from app_circles.schemas.group import LifeStage
from app_circles.schemas.profile import Child

DEFAULT_BIRTH_MONTH = 6
DAYS_PER_MONTH = 30

# Upper bounds in whole months: NEWBORN [0, 6), INFANT [6, 18), TODDLER [18, 36]
NEWBORN_UNTIL_MONTHS = 6
INFANT_UNTIL_MONTHS = 18
TODDLER_MAX_MONTHS = 36


class AgeModel:
    """
    Converts a child's birth/due date into a life stage and a priority scalar.

    Priorities are only comparable within one life stage: days until the due
    date for EXPECTING, age in months otherwise.
    """

    def __init__(self, clock: Clock):
        self._clock = clock

    @staticmethod
    def birth_month(child: Child) -> int:
        return child.birth_month or DEFAULT_BIRTH_MONTH

    def age_in_months(self, child: Child) -> int:
        """Whole months since birth; negative while the child is still due."""
        now = self._clock.now()
        return (now.year - child.birth_year) * 12 + (now.month - self.birth_month(child))

    def due_date(self, child: Child) -> datetime:
        return datetime(child.birth_year, self.birth_month(child), 1, tzinfo=timezone.utc)

    def classify(self, child: Optional[Child]) -> Optional[LifeStage]:
        """
        Map a child onto a life stage.

        Returns None when there is no child or the child has aged out of the
        program (older than 36 months).
        """
        if child is None:
            return None

        months = self.age_in_months(child)

        if months < 0:
            return LifeStage.EXPECTING
        if months < NEWBORN_UNTIL_MONTHS:
            return LifeStage.NEWBORN
        if months < INFANT_UNTIL_MONTHS:
            return LifeStage.INFANT
        if months <= TODDLER_MAX_MONTHS:
            return LifeStage.TODDLER
        return None

    def priority(self, child: Child, life_stage: LifeStage) -> float:
        """Ordering key within a bucket. Smaller means sooner due / younger."""
        if life_stage == LifeStage.EXPECTING:
            delta = self.due_date(child) - self._clock.now()
            return delta.total_seconds() / 86400
        return float(self.age_in_months(child))

    @staticmethod
    def gap_in_months(priorities: Iterable[float], life_stage: LifeStage) -> float:
        """Spread between the most and least advanced member, in months."""
        values = list(priorities)
        if len(values) < 2:
            return 0.0
        spread = max(values) - min(values)
        if life_stage == LifeStage.EXPECTING:
            return spread / DAYS_PER_MONTH
        return spread

    def describe_child(self, child: Optional[Child]) -> str:
        """Short roster label, e.g. "Expecting 3/2027", "4mo old", "1y 2mo old"."""
        if child is None:
            return "Dad"

        months = self.age_in_months(child)
        if months < 0:
            return f"Expecting {self.birth_month(child)}/{child.birth_year}"
        if months <= 6:
            return f"{months}mo old"
        if months <= 36:
            return f"{months // 12}y {months % 12}mo old"
        return f"{months // 12}y old"
