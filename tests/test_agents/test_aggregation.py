"""
Unit tests for the Complaint Aggregator.
"""

import pytest
import json
import os
import tempfile
from datetime import date
import pandas as pd
from crypto_complaints.agents.aggregation import ComplaintAggregator
from crypto_complaints.agents.categorization import NarrativeCategorizer
from crypto_complaints.models.category import IssueCategory
from crypto_complaints.models.complaint import ComplaintRecord


@pytest.fixture
def aggregator():
    return ComplaintAggregator()


@pytest.fixture
def records():
    return [
        ComplaintRecord(id="1", received_date="2024-05-03", company="Coinbase, Inc.",
                        issue="Fraud or scam", timely="Yes", consumer_disputed="No",
                        company_response="Closed with monetary relief"),
        ComplaintRecord(id="2", received_date="2024-05-20", company="Coinbase, Inc.",
                        issue="Managing an account", timely="Yes",
                        company_response="Closed with explanation"),
        ComplaintRecord(id="3", received_date="2024-06-04T10:00:00-05:00", company="Abra",
                        issue="Fraud or scam", timely="No", consumer_disputed="Yes"),
        ComplaintRecord(id="4", received_date="2024-06-05", company="Coinbase, Inc.",
                        issue="Fraud or scam", timely="Yes"),
        ComplaintRecord(id="5", company="Abra"),
    ]


def test_filter_complaints(aggregator, records):
    assert [r.id for r in aggregator.filter_complaints(records, company="Abra")] == ["3", "5"]
    assert len(aggregator.filter_complaints(records, company="all", issue="all")) == 5
    assert [r.id for r in aggregator.filter_complaints(records, issue="Fraud or scam")] == ["1", "3", "4"]


def test_filter_by_date_excludes_undated(aggregator, records):
    """Date bounds are inclusive and undated records never match them."""
    filtered = aggregator.filter_complaints(records, date_from="2024-05-20", date_to="2024-06-04")

    assert [r.id for r in filtered] == ["2", "3"]


def test_group_by_month(aggregator, records):
    months = aggregator.group_by_month(records)

    assert months == [
        {"month": "2024-05", "label": "May 2024", "count": 2},
        {"month": "2024-06", "label": "Jun 2024", "count": 2},
    ]


def test_group_by_issue(aggregator, records):
    issues = aggregator.group_by_issue(records)

    assert issues[0] == {"issue": "Fraud or scam", "count": 3}
    assert {"issue": "Unknown", "count": 1} in issues


def test_group_by_company(aggregator, records):
    companies = aggregator.group_by_company(records)

    assert companies[0]["company"] == "Coinbase, Inc."
    assert companies[0]["total"] == 3
    assert companies[0]["timely_rate"] == 100
    assert companies[0]["relief_rate"] == 33

    abra = companies[1]
    assert abra["company"] == "Abra"
    assert abra["dispute_rate"] == 50
    assert abra["timely_rate"] == 0


def test_calculate_metrics(aggregator, records):
    metrics = aggregator.calculate_metrics(records[:4], previous=records[:2])

    assert metrics["total"] == 4
    assert metrics["timely_rate"] == 75
    assert metrics["top_issue"] == "Fraud or scam"
    assert metrics["trend"] == "up"
    assert metrics["trend_percent"] == 100


def test_calculate_metrics_without_previous_period(aggregator, records):
    """No previous-period data means a neutral trend."""
    metrics = aggregator.calculate_metrics(records)

    assert metrics["trend"] == "neutral"
    assert metrics["trend_percent"] == 0

    empty = aggregator.calculate_metrics([])
    assert empty["top_issue"] == "N/A"
    assert empty["timely_rate"] == 0


def test_unique_lists(aggregator, records):
    assert aggregator.unique_companies(records) == ["Abra", "Coinbase, Inc."]
    assert aggregator.unique_issues(records) == ["Fraud or scam", "Managing an account"]


def test_weekly_history(aggregator, records):
    weeks = aggregator.weekly_history(records)

    # 2024-06-04 and 2024-06-05 share the week starting Monday 2024-06-03
    assert weeks[0] == {"week": "2024-06-03", "count": 2}
    assert [w["week"] for w in weeks] == ["2024-06-03", "2024-05-20", "2024-04-29"]


def test_export_category_table():
    """Breakdown is written as a ranked CSV plus metadata JSON."""
    categorizer = NarrativeCategorizer([
        IssueCategory("fraud", "Fraud", ("scam",)),
        IssueCategory("fees", "Fees", ("fee",)),
        IssueCategory("other", "Other"),
    ])
    filler = " and nobody at the company would explain what had happened to me."
    records = [
        ComplaintRecord(id="1", received_date="2024-06-20", narrative="A fee" + filler),
        ComplaintRecord(id="2", received_date="2024-06-21", narrative="A scam" + filler),
        ComplaintRecord(id="3", received_date="2024-06-22", narrative="Another scam" + filler),
    ]
    breakdown = categorizer.categorize(records, as_of=date(2024, 7, 1))

    with tempfile.TemporaryDirectory() as tmpdir:
        output_path = ComplaintAggregator().export_category_table(breakdown, output_dir=tmpdir)

        assert output_path == os.path.join(tmpdir, "categories_2024-07-01.csv")

        df = pd.read_csv(output_path)
        assert list(df["Id"]) == ["fraud", "fees", "other"]
        assert list(df["Count"]) == [2, 1, 0]
        assert list(df["Percentage"]) == [67, 33, 0]
        assert df.loc[0, "Trend"] == "up"

        with open(os.path.join(tmpdir, "categories_2024-07-01_metadata.json")) as f:
            metadata = json.load(f)
        assert metadata["total_eligible"] == 3
        assert metadata["assigned"] == 3


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
