"""
Relevance Filter.

Decides whether a fetched complaint belongs in the crypto dataset,
using company allow-lists and sub-product membership.
"""

import logging
from typing import Iterable, List

from crypto_complaints.models.complaint import ComplaintRecord

logger = logging.getLogger(__name__)


class RelevanceFilter:
    """
    Three-tier relevance policy:
    1. Pure crypto company -> always relevant
    2. Mixed company -> relevant only for crypto-adjacent sub-products
    3. Unknown company -> relevant (fail-open, keeps legacy records)
    """

    def __init__(
        self,
        pure_companies: Iterable[str],
        mixed_companies: Iterable[str],
        crypto_sub_products: Iterable[str]
    ):
        self.pure_companies = frozenset(pure_companies)
        self.mixed_companies = frozenset(mixed_companies)
        self.crypto_sub_products = frozenset(crypto_sub_products)

        overlap = self.pure_companies & self.mixed_companies
        if overlap:
            raise ValueError(f"Companies listed as both pure and mixed: {sorted(overlap)}")

    def is_relevant(self, record: ComplaintRecord) -> bool:
        company = record.company or ""
        if company in self.pure_companies:
            return True
        if company in self.mixed_companies:
            return (record.sub_product or "") in self.crypto_sub_products
        return True

    def filter(self, records: Iterable[ComplaintRecord]) -> List[ComplaintRecord]:
        """Relevant records, order preserved."""
        records = list(records)
        kept = [r for r in records if self.is_relevant(r)]

        dropped = len(records) - len(kept)
        if dropped:
            logger.info(f"Filtered out {dropped} non-crypto complaints from mixed companies")

        return kept
