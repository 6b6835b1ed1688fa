"""
Text analysis helpers.

Whole-word keyword matching, keyword/phrase extraction and fraud
detection over complaint narratives.
"""

import math
import re
from collections import Counter
from functools import lru_cache
from typing import Dict, Iterable, List

from crypto_complaints.models.complaint import ComplaintRecord

STOP_WORDS = frozenset([
    "i", "me", "my", "myself", "we", "our", "ours", "ourselves", "you", "your",
    "yours", "yourself", "yourselves", "he", "him", "his", "himself", "she",
    "her", "hers", "herself", "it", "its", "itself", "they", "them", "their",
    "theirs", "themselves", "what", "which", "who", "whom", "this", "that",
    "these", "those", "am", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "having", "do", "does", "did", "doing", "a", "an",
    "the", "and", "but", "if", "or", "because", "as", "until", "while", "of",
    "at", "by", "for", "with", "about", "against", "between", "into", "through",
    "during", "before", "after", "above", "below", "to", "from", "up", "down",
    "in", "out", "on", "off", "over", "under", "again", "further", "then",
    "once", "here", "there", "when", "where", "why", "how", "all", "each",
    "few", "more", "most", "other", "some", "such", "no", "nor", "not", "only",
    "own", "same", "so", "than", "too", "very", "s", "t", "can", "will", "just",
    "don", "should", "now", "xxxx", "xx", "would", "could", "also", "get", "got",
    "said", "one", "two", "three", "told", "even", "still", "since", "back",
    "made", "make", "take", "went", "going", "want", "wanted",
    "coinbase", "company", "account", "money", "time", "day", "days", "week",
    "weeks", "month", "months", "year", "years", "email", "phone", "called",
])

# Variants are listed explicitly; matching is whole-word only
FRAUD_KEYWORDS = [
    "identity theft", "someone accessed", "not me", "didnt authorize",
    "scam", "scammed", "scammer",
    "fraud", "fraudulent", "defrauded",
    "stolen", "stole", "stealing", "theft",
    "hacked", "hack", "hacker", "hacking",
    "unauthorized", "unauthorised",
    "phishing", "phished",
    "fake", "impersonator", "impersonation",
    "criminals", "criminal",
    "compromised", "breached",
]

_NON_ALPHA = re.compile(r"[^a-z\s]")


@lru_cache(maxsize=1024)
def compile_keyword_pattern(keyword: str) -> re.Pattern:
    """
    Compile a case-insensitive whole-word (or whole-phrase) pattern.

    Words inside a phrase may be separated by any run of whitespace.
    "art" matches "art" but not "cart" or "artwork".
    """
    words = keyword.strip().split()
    if not words:
        raise ValueError("Cannot compile an empty keyword")
    body = r"\s+".join(re.escape(w) for w in words)
    return re.compile(rf"\b{body}\b", re.IGNORECASE)


def matches_keyword(text: str, keyword: str) -> bool:
    return bool(text) and compile_keyword_pattern(keyword).search(text) is not None


def count_keyword_hits(text: str, keywords: Iterable[str]) -> int:
    """Number of distinct keywords present in text."""
    if not text:
        return 0
    return sum(1 for kw in keywords if compile_keyword_pattern(kw).search(text))


def narrative_complaints(
    records: Iterable[ComplaintRecord],
    min_length: int = 50
) -> List[ComplaintRecord]:
    """Records whose narrative is long enough to analyze."""
    return [r for r in records if r.has_narrative(min_length)]


def _tokenize(narrative: str, min_word_length: int) -> List[str]:
    cleaned = _NON_ALPHA.sub(" ", narrative.lower())
    return [
        w for w in cleaned.split()
        if len(w) > min_word_length and w not in STOP_WORDS
    ]


def extract_keywords(records: Iterable[ComplaintRecord], limit: int = 30) -> List[Dict]:
    """Most frequent non-stop-words (longer than 3 chars) across narratives."""
    counts = Counter()
    for record in records:
        if record.narrative:
            counts.update(_tokenize(record.narrative, min_word_length=3))

    return [{"text": word, "value": count} for word, count in counts.most_common(limit)]


def extract_phrases(
    records: Iterable[ComplaintRecord],
    limit: int = 20,
    min_count: int = 5
) -> List[Dict]:
    """Most frequent bigrams appearing at least min_count times."""
    counts = Counter()
    for record in records:
        if not record.narrative:
            continue
        words = _tokenize(record.narrative, min_word_length=2)
        counts.update(f"{a} {b}" for a, b in zip(words, words[1:]))

    return [
        {"text": phrase, "value": count}
        for phrase, count in counts.most_common()
        if count >= min_count
    ][:limit]


def is_fraud_complaint(record: ComplaintRecord) -> bool:
    text = f"{record.narrative or ''}\n{record.issue or ''}"
    return any(matches_keyword(text, kw) for kw in FRAUD_KEYWORDS)


def detect_fraud_complaints(records: Iterable[ComplaintRecord]) -> List[ComplaintRecord]:
    """Records whose narrative or issue mentions a fraud keyword."""
    return [r for r in records if is_fraud_complaint(r)]


def percent(part: int, whole: int) -> int:
    """Integer percentage, rounding halves up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def calculate_fraud_rate(records: List[ComplaintRecord]) -> int:
    return percent(len(detect_fraud_complaints(records)), len(records))


def fraud_rate_by_company(records: Iterable[ComplaintRecord]) -> List[Dict]:
    """Per-company totals and fraud rates, largest companies first."""
    totals = Counter()
    frauds = Counter()
    for record in records:
        company = record.company or "Unknown"
        totals[company] += 1
        if is_fraud_complaint(record):
            frauds[company] += 1

    rows = [
        {
            "company": company,
            "total": total,
            "fraud_count": frauds[company],
            "fraud_rate": percent(frauds[company], total),
        }
        for company, total in totals.items()
    ]
    rows.sort(key=lambda r: r["total"], reverse=True)
    return rows
