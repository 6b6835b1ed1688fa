"""
Complaint Classification Agent.

Classifies complaint narratives into issue categories in batches
using an LLM, and records the results in the classification cache.
"""

import json
import logging
import re
import time
from typing import Callable, Dict, Iterable, List, Sequence
import google.generativeai as genai

from crypto_complaints.models.complaint import ComplaintRecord
from crypto_complaints.registry.classification_cache import ClassificationCache
from crypto_complaints.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

CATEGORY_DESCRIPTIONS = {
    "locked_account": "Account access issues (locked, frozen, suspended, can't login)",
    "verification": "KYC/identity verification problems (documents, selfie, ID rejected)",
    "withdrawal": "Can't withdraw or transfer funds out",
    "customer_service": "Poor support, no response, long wait times",
    "fraud": "Scams, unauthorized transactions, hacking, stolen funds, phishing",
    "fees": "Unexpected fees, hidden charges, overcharged",
    "other": "Doesn't fit above categories",
}


def build_prompt(batch: Sequence[ComplaintRecord], labels: Sequence[str], max_chars: int = 1500) -> str:
    """Construct the classification prompt for one batch."""
    complaints_text = "\n\n---\n\n".join(
        f"Complaint {i + 1} (ID: {c.id}):\n{(c.narrative or '')[:max_chars]}"
        for i, c in enumerate(batch)
    )
    category_lines = "\n".join(
        f"- {label}: {CATEGORY_DESCRIPTIONS.get(label, label)}" for label in labels
    )

    return f"""You are classifying consumer complaints about cryptocurrency companies.

Classify each complaint into exactly ONE category:
{category_lines}

IMPORTANT: Classify based on the PRIMARY issue, not incidental mentions. For example, if someone describes being scammed and their account was then closed, the primary issue is "fraud" not "locked_account".

Return ONLY valid JSON with no markdown formatting:
{{"<complaint_id>": "<category>", ...}}

{complaints_text}"""


class ComplaintClassificationAgent:
    """
    Batch LLM classifier.

    For every eligible complaint not yet in the cache:
    1. Group into batches
    2. Ask the LLM for a {id: category} JSON object per batch
    3. Keep only labels from the closed category set
    4. Save the cache after each productive batch
    """

    def __init__(
        self,
        api_key: str,
        labels: Sequence[str],
        model_name: str = "gemini-2.0-flash-lite",
        temperature: float = 0.0,
        batch_size: int = 10,
        batch_delay_seconds: float = 4.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 5.0,
        min_narrative_length: int = 50,
        max_narrative_chars: int = 1500,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize classification agent.

        Args:
            api_key: Gemini API key
            labels: Closed set of category labels
            model_name: Gemini model to use
            temperature: LLM temperature (0.0 for deterministic)
            batch_size: Complaints per LLM request
            batch_delay_seconds: Rate-limit delay between batches
            max_retries: Attempts per batch
            retry_delay_seconds: Base delay, multiplied by the attempt number
            min_narrative_length: Narratives must be longer than this
            max_narrative_chars: Narrative truncation in the prompt
            sleep: Sleep function used for all delays
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.labels = list(labels)
        self.model_name = model_name
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.min_narrative_length = min_narrative_length
        self.max_narrative_chars = max_narrative_chars
        self._sleep = sleep
        self.retry_policy = RetryPolicy(
            max_attempts=max_retries,
            delay_seconds=retry_delay_seconds,
            backoff="linear",
            sleep=sleep
        )

        # Configure Gemini
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(
            model_name=model_name,
            generation_config={"temperature": temperature}
        )

        logger.info(f"Initialized ComplaintClassificationAgent with model={model_name}, batch_size={batch_size}")

    def select_unclassified(
        self,
        records: Iterable[ComplaintRecord],
        cache: ClassificationCache
    ) -> List[ComplaintRecord]:
        """Eligible records with no cached classification."""
        return [
            r for r in records
            if r.has_narrative(self.min_narrative_length) and r.id not in cache
        ]

    def _parse_response(self, response_text: str) -> Dict[str, str]:
        """
        Extract the JSON object from the model output (tolerates preamble
        text and code fences).

        Raises:
            ValueError: No JSON object in the response
            json.JSONDecodeError: Object is not valid JSON
        """
        match = _JSON_OBJECT.search(response_text or "")
        if not match:
            raise ValueError("No JSON object found in response")

        data = json.loads(match.group(0))
        if not isinstance(data, dict):
            raise ValueError("Response JSON is not an object")
        return data

    def _request_batch(self, batch: Sequence[ComplaintRecord]) -> Dict[str, str]:
        prompt = build_prompt(batch, self.labels, self.max_narrative_chars)
        response = self.model.generate_content(prompt)
        return self._parse_response(response.text.strip())

    def classify_batch(self, batch: Sequence[ComplaintRecord]) -> Dict[str, str]:
        """
        Classify one batch with retries.

        Returns:
            Validated {id: label} mapping; empty when all attempts failed
        """
        result = self.retry_policy.run(self._request_batch, batch)
        if not result.success:
            logger.error(f"All retries failed for batch, skipping: {result.error}")
            return {}

        validated = {}
        for complaint_id, label in result.value.items():
            if label in self.labels:
                validated[str(complaint_id)] = label
            else:
                logger.warning(f"Invalid category {label!r} for ID {complaint_id}, skipping")
        return validated

    def run(self, records: Iterable[ComplaintRecord], cache: ClassificationCache) -> int:
        """
        Classify every unclassified eligible record into the cache.

        Returns:
            Number of new classifications stored
        """
        pending = self.select_unclassified(records, cache)
        logger.info(f"{len(cache)} existing classifications, {len(pending)} complaints need classification")

        if not pending:
            logger.info("Nothing to classify")
            return 0

        batches = [pending[i:i + self.batch_size] for i in range(0, len(pending), self.batch_size)]
        logger.info(f"Processing {len(batches)} batches of up to {self.batch_size}")

        classified = 0
        for index, batch in enumerate(batches, start=1):
            results = self.classify_batch(batch)
            added = cache.update(results)
            classified += added

            if added > 0:
                cache.save()

            logger.info(
                f"Batch {index}/{len(batches)}: classified {added}/{len(batch)} "
                f"| total {classified} new, {len(cache)} overall"
            )

            if index < len(batches):
                self._sleep(self.batch_delay_seconds)

        logger.info(f"Done: {classified} new classifications, {len(cache)} total")
        return classified
