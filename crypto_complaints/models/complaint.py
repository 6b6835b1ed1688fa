"""
Complaint data model.

Represents one consumer complaint as returned by the CFPB search API.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


def parse_received_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a received date in YYYY-MM-DD or full ISO timestamp form.

    Returns None for missing or unparseable values.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


@dataclass(frozen=True)
class ComplaintRecord:
    """
    A single complaint record.

    The original API hit is kept in `raw` so the store can be written
    back without dropping fields the pipeline does not model.
    """
    id: str  # Source-assigned unique identifier (dedup key)
    received_date: Optional[str] = None  # YYYY-MM-DD or ISO timestamp
    company: Optional[str] = None
    product: Optional[str] = None
    sub_product: Optional[str] = None
    issue: Optional[str] = None
    sub_issue: Optional[str] = None
    narrative: Optional[str] = None
    company_response: Optional[str] = None
    timely: Optional[str] = None
    consumer_disputed: Optional[str] = None
    state: Optional[str] = None
    submitted_via: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Complaint record requires a non-empty id")

    @property
    def received_on(self) -> Optional[date]:
        """Parsed received date, or None when missing/malformed."""
        return parse_received_date(self.received_date)

    def has_narrative(self, min_length: int = 50) -> bool:
        """True when the narrative is long enough to categorize."""
        return bool(self.narrative) and len(self.narrative) > min_length

    @classmethod
    def from_hit(cls, hit: dict) -> "ComplaintRecord":
        """Create a record from an API hit ({_id, _source: {...}})."""
        source = hit.get("_source") or {}
        record_id = hit.get("_id") or source.get("complaint_id")
        return cls(
            id=str(record_id) if record_id is not None else "",
            received_date=source.get("date_received"),
            company=source.get("company"),
            product=source.get("product"),
            sub_product=source.get("sub_product"),
            issue=source.get("issue"),
            sub_issue=source.get("sub_issue"),
            narrative=source.get("complaint_what_happened") or None,
            company_response=source.get("company_response"),
            timely=source.get("timely"),
            consumer_disputed=source.get("consumer_disputed"),
            state=source.get("state"),
            submitted_via=source.get("submitted_via"),
            raw=hit,
        )

    def to_hit(self) -> dict:
        """Convert back to the API hit shape used by the record store."""
        if self.raw:
            return self.raw
        source = {
            "complaint_id": self.id,
            "date_received": self.received_date,
            "company": self.company,
            "product": self.product,
            "sub_product": self.sub_product,
            "issue": self.issue,
            "sub_issue": self.sub_issue,
            "complaint_what_happened": self.narrative or "",
            "company_response": self.company_response,
            "timely": self.timely,
            "consumer_disputed": self.consumer_disputed,
            "state": self.state,
            "submitted_via": self.submitted_via,
        }
        return {"_id": self.id, "_source": source}


def received_date_sort_key(record: ComplaintRecord):
    """
    Sort key for newest-first ordering with sort(reverse=True).
    Records without a parseable date sort after every dated record.
    """
    has_date = record.received_on is not None
    return (has_date, record.received_date if has_date else "")
