"""
Classification Cache - precomputed complaint id -> category label map.

Written by the batch classifier, read by the narrative categorizer.
"""

import json
import os
import logging
from typing import Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class ClassificationCache:
    """
    Flat JSON object {"<complaint id>": "<label>"} over a closed label set.

    Entries with an unknown label or a non-string value are skipped
    with a warning instead of being accepted.
    """

    def __init__(self, cache_path: str, valid_labels: Iterable[str]):
        """
        Args:
            cache_path: Path to classifications.json
            valid_labels: Closed set of accepted category labels
        """
        self.cache_path = str(cache_path)
        self.valid_labels = frozenset(valid_labels)
        self.entries: Dict[str, str] = {}

        if os.path.exists(self.cache_path):
            self._load()
        else:
            logger.info(f"No classification cache at {self.cache_path}, starting empty")

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, complaint_id: str) -> bool:
        return str(complaint_id) in self.entries

    def _load(self) -> None:
        try:
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except Exception as e:
            logger.warning(f"Could not read classification cache {self.cache_path}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning("Classification cache is not a JSON object, ignoring it")
            return

        self.entries = self.validate(data)
        logger.info(f"Loaded {len(self.entries)} classifications")

    def validate(self, mapping: Mapping) -> Dict[str, str]:
        """Keep only entries whose label is in the closed set."""
        valid = {}
        for complaint_id, label in mapping.items():
            if isinstance(label, str) and label in self.valid_labels:
                valid[str(complaint_id)] = label
            else:
                logger.warning(f"Invalid category {label!r} for ID {complaint_id}, skipping")
        return valid

    def get(self, complaint_id: str) -> Optional[str]:
        return self.entries.get(str(complaint_id))

    def update(self, mapping: Mapping) -> int:
        """
        Add validated entries.

        Returns:
            Number of entries accepted
        """
        valid = self.validate(mapping)
        self.entries.update(valid)
        return len(valid)

    def save(self) -> None:
        """Persist atomically (temp file + rename)."""
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        temp_path = f"{self.cache_path}.tmp"
        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(self.entries, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.cache_path)
            logger.debug(f"Classification cache saved: {len(self.entries)} entries")
        except Exception as e:
            logger.error(f"Failed to save classification cache: {e}")
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise
