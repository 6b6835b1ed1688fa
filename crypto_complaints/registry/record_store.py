"""
Record Store - deduplicated set of complaint records.

Manages loading, id-keyed merging, ordering and atomic persistence
of the complaints JSON document.
"""

import json
import os
import shutil
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from crypto_complaints.models.complaint import ComplaintRecord, received_date_sort_key

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Single source of truth for stored complaints.

    Invariant: no two records share an id. Records are only ever
    inserted, never updated or removed.

    File format mirrors the API envelope:
        {"hits": {"total": {"value": N}, "hits": [{"_id": ..., "_source": {...}}, ...]}}
    """

    def __init__(self, store_path: str):
        """
        Initialize store from disk or create a new empty store.

        Args:
            store_path: Path to complaints.json
        """
        self.store_path = str(store_path)
        self.records: List[ComplaintRecord] = []
        self._by_id: Dict[str, ComplaintRecord] = {}
        # False when the file on disk could not be parsed; it must not
        # replace the backup on the next save
        self._main_file_valid = True

        if os.path.exists(self.store_path):
            self._load()
        else:
            logger.info(f"No existing store found at {self.store_path}, starting empty")

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._by_id

    @property
    def ids(self) -> frozenset:
        return frozenset(self._by_id)

    @staticmethod
    def _read_hits(path: str) -> List[Dict]:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        # Bare list of hits is accepted as well as the envelope
        if isinstance(data, list):
            return data
        return (data.get("hits") or {}).get("hits") or []

    def _ingest_hits(self, hits: Iterable[Dict]) -> int:
        """
        Replace contents with the given hits, skipping malformed ones
        and later duplicates.

        Returns:
            Number of hits skipped as malformed
        """
        self._reset()
        skipped = 0
        for hit in hits:
            try:
                record = ComplaintRecord.from_hit(hit)
            except (ValueError, AttributeError) as e:
                skipped += 1
                logger.warning(f"Skipping malformed stored record: {e}")
                continue
            if record.id in self._by_id:
                continue
            self.records.append(record)
            self._by_id[record.id] = record

        if skipped:
            logger.warning(f"Skipped {skipped} malformed records while loading")
        return skipped

    def _load(self) -> None:
        """Load store from disk."""
        try:
            hits = self._read_hits(self.store_path)
        except Exception as e:
            logger.warning(f"Could not parse existing store {self.store_path}: {e}")
            self._main_file_valid = False
            self._try_restore_from_backup()
            return

        self._ingest_hits(hits)
        logger.info(f"Loaded {len(self.records)} complaints from {self.store_path}")

    def _reset(self) -> None:
        self.records = []
        self._by_id = {}

    def _try_restore_from_backup(self) -> None:
        """Restore from backup if the main file is corrupted, else start empty."""
        backup_path = f"{self.store_path}.backup"
        if os.path.exists(backup_path):
            logger.warning(f"Attempting to restore from backup: {backup_path}")
            try:
                hits = self._read_hits(backup_path)
            except Exception as e:
                logger.error(f"Backup restoration failed: {e}")
            else:
                self._ingest_hits(hits)
                self.sort()
                logger.info(f"Restored {len(self.records)} complaints from backup")
                return

        logger.warning("Starting fresh with an empty store")
        self._reset()

    def latest_date(self) -> Optional[date]:
        """Most recent parseable received date, or None."""
        dates = [r.received_on for r in self.records if r.received_on is not None]
        return max(dates) if dates else None

    def incremental_since(self, overlap_days: int = 7) -> Optional[str]:
        """
        Lower bound (YYYY-MM-DD) for the next incremental fetch.

        Set overlap_days before the latest stored date so late-reported
        complaints are picked up again; merge skips the ones already stored.
        None means a full fetch.
        """
        latest = self.latest_date()
        if latest is None:
            return None
        return (latest - timedelta(days=overlap_days)).strftime("%Y-%m-%d")

    def merge(self, records: Iterable[ComplaintRecord]) -> int:
        """
        Insert records whose id is not already stored, then re-sort.

        Returns:
            Number of records actually inserted
        """
        added = 0
        for record in records:
            if record.id in self._by_id:
                continue
            self.records.append(record)
            self._by_id[record.id] = record
            added += 1

        self.sort()
        logger.info(f"Merged {added} new complaints (total: {len(self.records)})")
        return added

    def sort(self) -> None:
        """Order by received date descending; stable for equal dates."""
        self.records.sort(key=received_date_sort_key, reverse=True)

    def get(self, record_id: str) -> Optional[ComplaintRecord]:
        return self._by_id.get(record_id)

    def to_dict(self) -> Dict:
        return {
            "hits": {
                "total": {"value": len(self.records)},
                "hits": [r.to_hit() for r in self.records],
            }
        }

    def save(self) -> None:
        """
        Persist the whole store with an atomic write.
        Creates a backup of the previous file first, unless that file
        failed to parse (the existing backup is kept instead).
        """
        directory = os.path.dirname(self.store_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        if os.path.exists(self.store_path):
            backup_path = f"{self.store_path}.backup"
            if self._main_file_valid:
                shutil.copy(self.store_path, backup_path)
                logger.debug(f"Created backup: {backup_path}")
            else:
                logger.warning(f"Existing store was unreadable, keeping {backup_path} unchanged")

        temp_path = f"{self.store_path}.tmp"
        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f)

            os.replace(temp_path, self.store_path)
            self._main_file_valid = True
            logger.info(f"Store saved: {len(self.records)} complaints")

        except Exception as e:
            logger.error(f"Failed to save store: {e}")
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def file_size_mb(self) -> float:
        if not os.path.exists(self.store_path):
            return 0.0
        return os.path.getsize(self.store_path) / (1024 * 1024)
