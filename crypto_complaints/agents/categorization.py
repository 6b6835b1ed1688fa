"""
Narrative Categorization Agent.

Assigns each complaint narrative to exactly one issue category by
whole-word keyword scoring, and aggregates per-category counts,
percentages and 30-day trends.
"""

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from crypto_complaints.models.category import CategoryBreakdown, CategoryStats, IssueCategory, Trend
from crypto_complaints.models.complaint import ComplaintRecord, received_date_sort_key
from crypto_complaints.registry.classification_cache import ClassificationCache
from crypto_complaints.utils.text_analysis import count_keyword_hits, percent

logger = logging.getLogger(__name__)


class NarrativeCategorizer:
    """
    Exclusive, score-based narrative classifier.

    For every eligible complaint (narrative longer than the threshold):
    1. Score each keyword category: number of its keywords present as
       whole words or phrases
    2. Highest score wins; ties go to the category declared first
    3. All-zero scores fall back to the keyword-less category

    A precomputed label from the classification cache, when present,
    takes precedence over keyword scoring.
    """

    def __init__(
        self,
        categories: Sequence[IssueCategory],
        min_narrative_length: int = 50,
        trend_window_days: int = 30
    ):
        """
        Initialize categorizer.

        Args:
            categories: Ordered categories; exactly one must have no keywords
            min_narrative_length: Narratives must be longer than this
            trend_window_days: Size of each trend comparison window
        """
        self.categories = list(categories)
        self.min_narrative_length = min_narrative_length
        self.trend_window_days = trend_window_days

        ids = [c.id for c in self.categories]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate category ids: {ids}")

        fallbacks = [c for c in self.categories if c.is_fallback]
        if len(fallbacks) != 1:
            raise ValueError(
                f"Expected exactly one fallback category, found {len(fallbacks)}"
            )

        self.fallback = fallbacks[0]
        self.scored_categories = [c for c in self.categories if not c.is_fallback]
        self._by_id = {c.id: c for c in self.categories}

        logger.debug(
            f"Initialized NarrativeCategorizer with {len(self.scored_categories)} "
            f"keyword categories, fallback={self.fallback.id}"
        )

    @classmethod
    def from_config(cls, category_dicts: Iterable[dict], **kwargs) -> "NarrativeCategorizer":
        return cls([IssueCategory.from_dict(d) for d in category_dicts], **kwargs)

    @property
    def category_ids(self) -> List[str]:
        return [c.id for c in self.categories]

    def is_eligible(self, record: ComplaintRecord) -> bool:
        return record.has_narrative(self.min_narrative_length)

    def score(self, narrative: str) -> Dict[str, int]:
        """Keyword hit count per non-fallback category, in category order."""
        return {
            c.id: count_keyword_hits(narrative, c.keywords)
            for c in self.scored_categories
        }

    def assign(
        self,
        record: ComplaintRecord,
        cache: Optional[ClassificationCache] = None
    ) -> IssueCategory:
        """Pick the single category for one record."""
        if cache is not None:
            label = cache.get(record.id)
            if label in self._by_id:
                return self._by_id[label]

        scores = self.score(record.narrative or "")
        best = self.fallback
        best_score = 0
        for category in self.scored_categories:
            hits = scores[category.id]
            # Strict comparison keeps the earliest category on ties
            if hits > best_score:
                best = category
                best_score = hits

        return best

    def compute_trend(self, records: Iterable[ComplaintRecord], as_of: date) -> Trend:
        """
        Compare the last trend window (as_of - N, as_of] with the window
        before it. Records without a parseable date are ignored.
        """
        window = timedelta(days=self.trend_window_days)
        recent_start = as_of - window
        previous_start = recent_start - window

        recent = 0
        previous = 0
        for record in records:
            received = record.received_on
            if received is None:
                continue
            if recent_start < received <= as_of:
                recent += 1
            elif previous_start < received <= recent_start:
                previous += 1

        return Trend.from_counts(recent, previous)

    def categorize(
        self,
        records: Iterable[ComplaintRecord],
        as_of: Optional[date] = None,
        cache: Optional[ClassificationCache] = None
    ) -> CategoryBreakdown:
        """
        Categorize all eligible records.

        Args:
            records: Complaint records (ineligible ones are ignored)
            as_of: Reference date for trend windows (defaults to today)
            cache: Optional precomputed classifications

        Returns:
            CategoryBreakdown with one CategoryStats per category, in
            configured order
        """
        as_of = as_of or date.today()

        buckets: Dict[str, List[ComplaintRecord]] = {c.id: [] for c in self.categories}
        total_eligible = 0
        for record in records:
            if not self.is_eligible(record):
                continue
            total_eligible += 1
            buckets[self.assign(record, cache).id].append(record)

        stats = []
        for category in self.categories:
            assigned = sorted(buckets[category.id], key=received_date_sort_key, reverse=True)
            stats.append(CategoryStats(
                category=category,
                count=len(assigned),
                percentage=percent(len(assigned), total_eligible),
                trend=self.compute_trend(assigned, as_of),
                complaints=assigned
            ))

        logger.info(
            f"Categorized {total_eligible} narratives into "
            f"{sum(1 for s in stats if s.count)} categories (as of {as_of.isoformat()})"
        )

        return CategoryBreakdown(
            total_eligible=total_eligible,
            stats=stats,
            as_of=as_of.isoformat()
        )
