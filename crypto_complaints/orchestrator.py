"""
Pipeline Orchestrator.

Coordinates the fetch/filter/merge run, the batch classifier, the
narrative categorizer and dataset statistics.
"""

import logging
import os
import time
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional

from crypto_complaints.agents.aggregation import ComplaintAggregator
from crypto_complaints.agents.categorization import NarrativeCategorizer
from crypto_complaints.agents.classification import ComplaintClassificationAgent
from crypto_complaints.agents.ingestion import ComplaintFetcher
from crypto_complaints.agents.relevance import RelevanceFilter
from crypto_complaints.models.category import CategoryBreakdown
from crypto_complaints.registry.classification_cache import ClassificationCache
from crypto_complaints.registry.record_store import RecordStore
from crypto_complaints.utils.storage import StorageManager
from crypto_complaints.utils.text_analysis import (
    calculate_fraud_rate,
    extract_keywords,
    extract_phrases,
    fraud_rate_by_company,
    narrative_complaints,
)
import config.settings as settings

logger = logging.getLogger(__name__)


class EmptyDatasetError(Exception):
    """Both the existing store and the fetch came back empty."""


def write_ci_outputs(values: Dict, output_path: Optional[str] = None) -> bool:
    """
    Append key=value lines for a CI system (GITHUB_OUTPUT).

    Returns:
        True if anything was written
    """
    output_path = output_path or os.getenv("GITHUB_OUTPUT")
    if not output_path:
        return False

    with open(output_path, 'a', encoding='utf-8') as f:
        for key, value in values.items():
            f.write(f"{key}={value}\n")
    return True


class PipelineOrchestrator:
    """
    Runs the pipeline stages against the record store.

    fetch:      Ingestion -> anomaly check -> Relevance Filter -> Merge -> Save
    classify:   Record Store -> LLM batches -> Classification Cache
    categorize: Record Store (+ cache) -> Categorizer -> CSV export
    stats:      Record Store -> Aggregator / text analysis + last run report
    """

    def __init__(
        self,
        store_path: str,
        cache_path: str,
        data_root: str,
        fetcher: Optional[ComplaintFetcher] = None,
        relevance_filter: Optional[RelevanceFilter] = None,
        overlap_days: int = settings.FETCH_OVERLAP_DAYS
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            store_path: Path to the record store JSON
            cache_path: Path to the classification cache JSON
            data_root: Root directory for run reports
            fetcher: Optional fetcher (built from settings when omitted)
            relevance_filter: Optional filter (built from settings when omitted)
            overlap_days: Incremental refetch overlap
        """
        self.store_path = str(store_path)
        self.cache_path = str(cache_path)
        self.data_root = str(data_root)
        self.overlap_days = overlap_days

        self.fetcher = fetcher or ComplaintFetcher(
            api_base=settings.API_BASE,
            companies=settings.FETCH_COMPANIES,
            sub_product=settings.FETCH_SUB_PRODUCT,
            page_size=settings.PAGE_SIZE,
            request_delay_seconds=settings.REQUEST_DELAY_SECONDS,
            max_retries=settings.FETCH_MAX_RETRIES,
            retry_delay_seconds=settings.FETCH_RETRY_DELAY_SECONDS,
            timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS,
            user_agent=settings.USER_AGENT
        )

        self.relevance_filter = relevance_filter or RelevanceFilter(
            pure_companies=settings.PURE_CRYPTO_COMPANIES,
            mixed_companies=settings.MIXED_COMPANIES,
            crypto_sub_products=settings.CRYPTO_SUB_PRODUCTS
        )

        self.categorizer = NarrativeCategorizer.from_config(
            settings.ISSUE_CATEGORIES,
            min_narrative_length=settings.MIN_NARRATIVE_LENGTH,
            trend_window_days=settings.TREND_WINDOW_DAYS
        )

        self.aggregator = ComplaintAggregator()
        self.storage = StorageManager(self.data_root)

    def load_cache(self) -> ClassificationCache:
        return ClassificationCache(self.cache_path, valid_labels=self.categorizer.category_ids)

    def fetch(self) -> Dict:
        """
        Incremental fetch and merge into the record store.

        Returns:
            Run report dict

        Raises:
            FetchError: A page failed after all retries (store untouched)
            EmptyDatasetError: Store and fetch both empty (store untouched)
        """
        start = time.monotonic()

        store = RecordStore(self.store_path)
        logger.info(f"Existing data: {len(store)} complaints")

        since_date = store.incremental_since(self.overlap_days)
        if since_date:
            logger.info(f"Latest stored date {store.latest_date()}, fetching since {since_date}")

        # STAGE 1: Ingestion
        fetched = self.fetcher.fetch(since_date)

        if len(store) == 0 and not fetched:
            logger.error("Fetch returned 0 complaints and no existing data - aborting to preserve the store")
            raise EmptyDatasetError(
                "Fetch returned 0 complaints - API may be down or query failed"
            )

        # STAGE 2: Relevance filtering
        relevant = self.relevance_filter.filter(fetched)

        # STAGE 3: Merge and persist
        added = store.merge(relevant)
        store.save()

        report = {
            "run_at": datetime.now(timezone.utc).isoformat(),
            "since_date": since_date,
            "fetched": len(fetched),
            "dropped": len(fetched) - len(relevant),
            "added": added,
            "total": len(store),
            "file_size_mb": round(store.file_size_mb(), 2),
            "elapsed_seconds": round(time.monotonic() - start, 1),
        }
        self.storage.save_run_report(report, date.today().isoformat())

        write_ci_outputs({
            "complaint_count": report["total"],
            "new_complaints": report["added"],
            "file_size_mb": f"{report['file_size_mb']:.2f}",
        })

        logger.info(f"Fetch complete: {added} new, {len(store)} total")
        return report

    def classify(self, api_key: str) -> int:
        """
        Classify unclassified narratives into the cache.

        Returns:
            Number of new classifications
        """
        store = RecordStore(self.store_path)
        cache = self.load_cache()

        agent = ComplaintClassificationAgent(
            api_key=api_key,
            labels=self.categorizer.category_ids,
            model_name=settings.CLASSIFIER_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            batch_size=settings.CLASSIFIER_BATCH_SIZE,
            batch_delay_seconds=settings.CLASSIFIER_BATCH_DELAY_SECONDS,
            max_retries=settings.CLASSIFIER_MAX_RETRIES,
            retry_delay_seconds=settings.CLASSIFIER_RETRY_DELAY_SECONDS,
            min_narrative_length=settings.MIN_NARRATIVE_LENGTH,
            max_narrative_chars=settings.CLASSIFIER_MAX_NARRATIVE_CHARS
        )
        return agent.run(store.records, cache)

    def categorize(
        self,
        as_of: Optional[date] = None,
        use_cache: bool = True,
        output_dir: Optional[str] = None
    ) -> CategoryBreakdown:
        """
        Categorize stored narratives, optionally exporting the table.
        """
        store = RecordStore(self.store_path)
        cache = self.load_cache() if use_cache else None

        breakdown = self.categorizer.categorize(store.records, as_of=as_of, cache=cache)

        if output_dir:
            self.aggregator.export_category_table(breakdown, output_dir=output_dir)

        return breakdown

    def stats(
        self,
        company: Optional[str] = None,
        issue: Optional[str] = None,
        as_of: Optional[date] = None,
        top: int = 10
    ) -> Dict:
        """
        Dataset statistics over the stored complaints.

        Args:
            company: Restrict to one company ("all" or None for every company)
            issue: Restrict to one issue ("all" or None for every issue)
            as_of: End of the trailing metrics window (defaults to today)
            top: Length of the ranked lists

        Returns:
            Dict of aggregates, ranked lists and the most recent run report
        """
        as_of = as_of or date.today()
        store = RecordStore(self.store_path)
        records = self.aggregator.filter_complaints(store.records, company=company, issue=issue)

        # Inclusive bounds for the windows (as_of - N, as_of] and the one before it
        window = timedelta(days=settings.TREND_WINDOW_DAYS)
        recent = self.aggregator.filter_complaints(
            records,
            date_from=(as_of - window + timedelta(days=1)).isoformat(),
            date_to=as_of.isoformat()
        )
        previous = self.aggregator.filter_complaints(
            records,
            date_from=(as_of - 2 * window + timedelta(days=1)).isoformat(),
            date_to=(as_of - window).isoformat()
        )

        narratives = narrative_complaints(records, settings.MIN_NARRATIVE_LENGTH)
        run_dates = self.storage.get_all_run_dates()

        logger.info(f"Computing statistics over {len(records)} complaints ({len(narratives)} with narratives)")

        return {
            "as_of": as_of.isoformat(),
            "total": len(records),
            "narratives": len(narratives),
            "companies": self.aggregator.unique_companies(records),
            "issues": self.aggregator.unique_issues(records),
            "recent": self.aggregator.calculate_metrics(recent, previous),
            "by_month": self.aggregator.group_by_month(records),
            "by_issue": self.aggregator.group_by_issue(records)[:top],
            "by_company": self.aggregator.group_by_company(records)[:top],
            "weekly": self.aggregator.weekly_history(records)[:top],
            "fraud_rate": calculate_fraud_rate(records),
            "fraud_by_company": fraud_rate_by_company(records)[:top],
            "keywords": extract_keywords(narratives, limit=top),
            "phrases": extract_phrases(narratives, limit=top),
            "last_run": self.storage.load_run_report(run_dates[-1]) if run_dates else None,
        }
