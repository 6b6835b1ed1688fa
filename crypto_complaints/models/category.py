"""
Category data models.

Issue category definitions and the per-category statistics produced
by the narrative categorizer.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional

from crypto_complaints.models.complaint import ComplaintRecord

TREND_DIRECTIONS = ("up", "down", "neutral")


@dataclass(frozen=True)
class IssueCategory:
    """
    One issue bucket.
    A category with no keywords is the fallback bucket.
    """
    id: str  # Stable identifier, shared with the classification cache labels
    label: str  # Human-readable label
    keywords: tuple = ()  # Whole-word/phrase triggers

    def __post_init__(self):
        if not self.id:
            raise ValueError("Category id must be non-empty")

    @property
    def is_fallback(self) -> bool:
        return len(self.keywords) == 0

    @classmethod
    def from_dict(cls, data: dict) -> "IssueCategory":
        return cls(
            id=data["id"],
            label=data.get("label", data["id"]),
            keywords=tuple(k.lower() for k in data.get("keywords", [])),
        )


@dataclass
class Trend:
    """Change between the recent window and the window before it."""
    direction: str = "neutral"
    percent: int = 0  # Absolute percent change
    recent_count: int = 0
    previous_count: int = 0

    def __post_init__(self):
        if self.direction not in TREND_DIRECTIONS:
            raise ValueError(
                f"Invalid trend direction: {self.direction}. Must be one of {TREND_DIRECTIONS}"
            )

    @classmethod
    def from_counts(cls, recent: int, previous: int, saturate: bool = True) -> "Trend":
        """
        Build a trend from two window counts.

        With no previous activity the change is undefined: a positive
        recent count saturates to up/100 (or neutral when saturate=False),
        and two empty windows are neutral.
        """
        if previous == 0:
            if recent > 0 and saturate:
                return cls("up", 100, recent, previous)
            return cls("neutral", 0, recent, previous)

        change = math.floor((recent - previous) * 100 / previous + 0.5)
        if change > 0:
            direction = "up"
        elif change < 0:
            direction = "down"
        else:
            direction = "neutral"
        return cls(direction, abs(change), recent, previous)


@dataclass
class CategoryStats:
    """Aggregate result for one category."""
    category: IssueCategory
    count: int = 0
    percentage: int = 0
    trend: Trend = field(default_factory=Trend)
    complaints: List[ComplaintRecord] = field(default_factory=list)

    def to_row(self) -> dict:
        """Flatten into a table row (complaints omitted)."""
        return {
            "Category": self.category.label,
            "Id": self.category.id,
            "Count": self.count,
            "Percentage": self.percentage,
            "Trend": self.trend.direction,
            "TrendPercent": self.trend.percent,
            "Last30Days": self.trend.recent_count,
            "Previous30Days": self.trend.previous_count,
        }


@dataclass
class CategoryBreakdown:
    """Full categorizer output over one dataset."""
    total_eligible: int
    stats: List[CategoryStats]
    as_of: Optional[str] = None  # YYYY-MM-DD reference date for trends

    def get(self, category_id: str) -> Optional[CategoryStats]:
        for s in self.stats:
            if s.category.id == category_id:
                return s
        return None

    def ranked(self) -> List[CategoryStats]:
        """Stats ordered by count descending; equal counts keep category order."""
        return sorted(self.stats, key=lambda s: s.count, reverse=True)

    def assignments(self) -> dict:
        """Map complaint id -> assigned category id."""
        return {
            complaint.id: s.category.id
            for s in self.stats
            for complaint in s.complaints
        }
