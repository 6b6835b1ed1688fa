"""
Ingestion Agent.

Incrementally fetches complaint records from the CFPB complaint
search API, one page at a time, with retries.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from crypto_complaints.models.complaint import ComplaintRecord
from crypto_complaints.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """
    A page request failed after all retries.

    Records from pages retrieved before the failure are kept in
    `partial_records`.
    """

    def __init__(self, message: str, partial_records: Optional[List[ComplaintRecord]] = None,
                 page: Optional[int] = None):
        super().__init__(message)
        self.partial_records = list(partial_records or [])
        self.page = page


def extract_search_after(hits: Sequence[Dict]) -> Optional[str]:
    """
    Continuation cursor from the last hit's sort key: "{primary}_{secondary}".
    None when the page is empty or the sort key is incomplete.
    """
    if not hits:
        return None
    sort_key = hits[-1].get("sort")
    if not sort_key or len(sort_key) < 2:
        return None
    return f"{sort_key[0]}_{sort_key[1]}"


def extract_total(hits_envelope: Dict) -> int:
    """Total reported by the server: {"value": N} or a bare integer."""
    total = hits_envelope.get("total")
    if isinstance(total, dict):
        total = total.get("value")
    try:
        return int(total or 0)
    except (TypeError, ValueError):
        return 0


class ComplaintFetcher:
    """
    Paginates the complaint search API sorted by creation date descending.

    Stops when a page comes back empty or once the number of records
    retrieved reaches the total reported on the first page. Each page is
    requested sequentially with a politeness delay in between.
    """

    def __init__(
        self,
        api_base: str,
        companies: Sequence[str],
        sub_product: Optional[str] = "Virtual currency",
        page_size: int = 100,
        request_delay_seconds: float = 0.5,
        max_retries: int = 3,
        retry_delay_seconds: float = 2.0,
        timeout_seconds: float = 30,
        user_agent: str = "CryptoComplaintsDashboard/1.0",
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize fetcher.

        Args:
            api_base: Search endpoint URL
            companies: Company names sent as repeated `company` params
            sub_product: Sub-product filter sent with every request
            page_size: Records per page
            request_delay_seconds: Delay between successful pages
            max_retries: Attempts per page before giving up
            retry_delay_seconds: Fixed delay between attempts
            timeout_seconds: HTTP timeout per request
            user_agent: User-Agent header value
            session: Optional requests session (injected in tests)
            sleep: Sleep function used for all delays
        """
        self.api_base = api_base
        self.companies = list(companies)
        self.sub_product = sub_product
        self.page_size = page_size
        self.request_delay_seconds = request_delay_seconds
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": user_agent,
        })
        self._sleep = sleep
        self.retry_policy = RetryPolicy(
            max_attempts=max_retries,
            delay_seconds=retry_delay_seconds,
            backoff="fixed",
            retry_on=(requests.RequestException, ValueError),
            sleep=sleep
        )

        logger.info(
            f"Initialized ComplaintFetcher for {len(self.companies)} companies, "
            f"page_size={page_size}"
        )

    def build_params(
        self,
        since_date: Optional[str] = None,
        frm: int = 0,
        search_after: Optional[str] = None
    ) -> List[Tuple[str, Any]]:
        """Query parameters for one page request."""
        params: List[Tuple[str, Any]] = [("company", c) for c in self.companies]
        if self.sub_product:
            params.append(("sub_product", self.sub_product))
        params.append(("size", self.page_size))
        params.append(("sort", "created_date_desc"))
        if since_date:
            params.append(("date_received_min", since_date))
        if frm:
            params.append(("frm", frm))
        if search_after:
            params.append(("search_after", search_after))
        return params

    def fetch_page(self, params: List[Tuple[str, Any]]) -> Dict:
        """
        Request a single page.

        Returns:
            The page in envelope form: {"hits": {"total": ..., "hits": [...]}}

        Raises:
            requests.RequestException: Transport error or non-2xx status
            ValueError: Body is not JSON or not a recognised page shape
        """
        response = self.session.get(self.api_base, params=params, timeout=self.timeout_seconds)

        if not 200 <= response.status_code < 300:
            raise requests.HTTPError(
                f"HTTP {response.status_code}: {response.reason}", response=response
            )

        data = response.json()

        # Flat array responses are a single complete page
        if isinstance(data, list):
            return {"hits": {"total": {"value": len(data)}, "hits": data}}

        if not isinstance(data, dict):
            raise ValueError(f"Unexpected page body type: {type(data).__name__}")

        envelope = data.get("hits") or {}
        if not isinstance(envelope, dict) or not isinstance(envelope.get("hits", []), list):
            raise ValueError("Malformed page body: missing hits envelope")

        return data

    def fetch(self, since_date: Optional[str] = None) -> List[ComplaintRecord]:
        """
        Fetch all records received on or after since_date (full fetch if None).

        Returns:
            Fetched records in server order, not filtered or deduplicated

        Raises:
            FetchError: A page failed after all retries
        """
        mode = f"incremental (since {since_date})" if since_date else "full"
        logger.info(f"Starting complaint fetch ({mode}), page_size={self.page_size}")

        records: List[ComplaintRecord] = []
        retrieved = 0
        frm = 0
        search_after = None
        total_expected = None
        page = 0

        while True:
            page += 1
            params = self.build_params(since_date=since_date, frm=frm, search_after=search_after)
            logger.debug(f"Page {page}: frm={frm}, search_after={search_after or 'none'}")

            result = self.retry_policy.run(self.fetch_page, params)
            if not result.success:
                logger.error(f"Page {page} failed after {result.attempts} attempts: {result.error}")
                raise FetchError(
                    f"Page {page} failed after {result.attempts} attempts: {result.error}",
                    partial_records=records,
                    page=page
                )

            envelope = result.value.get("hits") or {}
            if total_expected is None:
                total_expected = extract_total(envelope)
                logger.info(f"Total complaints available: {total_expected}")

            hits = envelope.get("hits") or []
            if not hits:
                logger.info("No more results, pagination complete")
                break

            for hit in hits:
                try:
                    records.append(ComplaintRecord.from_hit(hit))
                except (ValueError, AttributeError) as e:
                    logger.warning(f"Skipping malformed hit on page {page}: {e}")

            retrieved += len(hits)
            logger.info(f"Page {page}: retrieved {len(hits)} (running total {retrieved}/{total_expected})")

            search_after = extract_search_after(hits)
            frm += len(hits)

            if retrieved >= total_expected:
                logger.info("Reached expected total, stopping")
                break

            self._sleep(self.request_delay_seconds)

        logger.info(f"Fetched {len(records)} complaints in {page} page(s)")
        return records
