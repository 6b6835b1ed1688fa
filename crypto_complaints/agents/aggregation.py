"""
Complaint Aggregator.

Dataset-level aggregates (by month, issue, company, week), filtering,
summary metrics, and export of category breakdowns to CSV.
"""

import json
import logging
import os
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import pandas as pd

from crypto_complaints.models.category import CategoryBreakdown, Trend
from crypto_complaints.models.complaint import ComplaintRecord
from crypto_complaints.utils.text_analysis import percent

logger = logging.getLogger(__name__)


class ComplaintAggregator:
    """
    Stateless aggregates over a list of complaint records.
    """

    def filter_complaints(
        self,
        records: Iterable[ComplaintRecord],
        company: Optional[str] = None,
        issue: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None
    ) -> List[ComplaintRecord]:
        """
        Filter by exact company/issue and inclusive YYYY-MM-DD bounds.
        "all" or None disables a filter. Undated records fail date bounds.
        """
        result = []
        for r in records:
            if company and company != "all" and r.company != company:
                continue
            if issue and issue != "all" and r.issue != issue:
                continue
            if date_from or date_to:
                received = r.received_on
                if received is None:
                    continue
                day = received.isoformat()
                if date_from and day < date_from:
                    continue
                if date_to and day > date_to:
                    continue
            result.append(r)
        return result

    def group_by_month(self, records: Iterable[ComplaintRecord]) -> List[Dict]:
        """Monthly counts, oldest month first."""
        counts = Counter()
        for r in records:
            received = r.received_on
            if received is not None:
                counts[received.strftime("%Y-%m")] += 1

        return [
            {
                "month": month,
                "label": datetime.strptime(month, "%Y-%m").strftime("%b %Y"),
                "count": counts[month],
            }
            for month in sorted(counts)
        ]

    def group_by_issue(self, records: Iterable[ComplaintRecord]) -> List[Dict]:
        """Counts per issue field, most common first."""
        counts = Counter(r.issue or "Unknown" for r in records)
        return [{"issue": issue, "count": count} for issue, count in counts.most_common()]

    def group_by_company(self, records: Iterable[ComplaintRecord]) -> List[Dict]:
        """Per-company totals with timely, disputed and relief rates."""
        stats = defaultdict(lambda: {"total": 0, "timely": 0, "disputed": 0, "relief": 0})

        for r in records:
            s = stats[r.company or "Unknown"]
            s["total"] += 1
            if r.timely == "Yes":
                s["timely"] += 1
            if r.consumer_disputed == "Yes":
                s["disputed"] += 1
            if r.company_response and "relief" in r.company_response.lower():
                s["relief"] += 1

        rows = [
            {
                "company": company,
                "total": s["total"],
                "timely_rate": percent(s["timely"], s["total"]),
                "dispute_rate": percent(s["disputed"], s["total"]),
                "relief_rate": percent(s["relief"], s["total"]),
            }
            for company, s in stats.items()
        ]
        rows.sort(key=lambda row: row["total"], reverse=True)
        return rows

    def calculate_metrics(
        self,
        records: List[ComplaintRecord],
        previous: Optional[List[ComplaintRecord]] = None
    ) -> Dict:
        """
        Summary metrics for a period, compared against the previous period.
        With no previous-period data the trend is neutral.
        """
        previous = previous or []
        total = len(records)
        timely = sum(1 for r in records if r.timely == "Yes")
        issues = self.group_by_issue(records)
        trend = Trend.from_counts(total, len(previous), saturate=False)

        return {
            "total": total,
            "timely_rate": percent(timely, total),
            "top_issue": issues[0]["issue"] if issues else "N/A",
            "trend": trend.direction,
            "trend_percent": trend.percent,
        }

    def unique_companies(self, records: Iterable[ComplaintRecord]) -> List[str]:
        return sorted({r.company for r in records if r.company})

    def unique_issues(self, records: Iterable[ComplaintRecord]) -> List[str]:
        return sorted({r.issue for r in records if r.issue})

    def weekly_history(self, records: Iterable[ComplaintRecord]) -> List[Dict]:
        """Counts per ISO week (keyed by Monday), newest week first."""
        counts = Counter()
        for r in records:
            received = r.received_on
            if received is None:
                continue
            monday = received - timedelta(days=received.weekday())
            counts[monday.isoformat()] += 1

        return [
            {"week": week, "count": counts[week]}
            for week in sorted(counts, reverse=True)
        ]

    def export_category_table(
        self,
        breakdown: CategoryBreakdown,
        output_dir: str = "output"
    ) -> str:
        """
        Write the category breakdown as CSV plus a metadata JSON file.

        Returns:
            Path to the generated CSV file
        """
        rows = [s.to_row() for s in breakdown.ranked()]
        df = pd.DataFrame(rows, columns=[
            "Category", "Id", "Count", "Percentage", "Trend",
            "TrendPercent", "Last30Days", "Previous30Days",
        ])

        as_of = breakdown.as_of or datetime.now(timezone.utc).strftime("%Y-%m-%d")
        os.makedirs(output_dir, exist_ok=True)
        output_path = os.path.join(output_dir, f"categories_{as_of}.csv")
        df.to_csv(output_path, index=False)

        logger.info(f"Category table saved to {output_path} ({len(df)} categories)")

        metadata_path = os.path.join(output_dir, f"categories_{as_of}_metadata.json")
        metadata = {
            "as_of": as_of,
            "total_eligible": breakdown.total_eligible,
            "categories": len(df),
            "assigned": int(df["Count"].sum()) if not df.empty else 0,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
        with open(metadata_path, 'w') as f:
            json.dump(metadata, f, indent=2)

        logger.info(f"Metadata saved to {metadata_path}")

        return output_path
