"""
Storage utility.

File I/O helpers for fetch run reports.
"""

import json
import os
import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class StorageManager:
    """
    Manages file I/O for pipeline artifacts other than the record store
    and the classification cache.

    Handles:
    - Fetch run reports (data/runs/YYYY-MM-DD.json)
    """

    def __init__(self, data_root: str):
        """
        Initialize storage manager.

        Args:
            data_root: Root data directory (e.g., /path/to/data)
        """
        self.data_root = str(data_root)
        self.runs_dir = os.path.join(self.data_root, "runs")

        os.makedirs(self.runs_dir, exist_ok=True)

        logger.debug(f"Initialized StorageManager with data_root={self.data_root}")

    def save_run_report(self, report: Dict, date: str) -> str:
        """
        Save the summary of a fetch run. A later run on the same date
        replaces the earlier report.

        Args:
            report: Run summary dict (see PipelineOrchestrator.fetch for schema)
            date: Date in YYYY-MM-DD format

        Returns:
            Path of the written report
        """
        filepath = os.path.join(self.runs_dir, f"{date}.json")

        try:
            with open(filepath, 'w') as f:
                json.dump(report, f, indent=2)
            logger.info(f"Saved run report to {filepath}")
            return filepath
        except Exception as e:
            logger.error(f"Failed to save run report for {date}: {e}")
            raise

    def load_run_report(self, date: str) -> Optional[Dict]:
        """
        Load the run report for a specific date.

        Returns:
            Report dict, or None if missing or unreadable
        """
        filepath = os.path.join(self.runs_dir, f"{date}.json")

        if not os.path.exists(filepath):
            logger.debug(f"No run report found for {date}")
            return None

        try:
            with open(filepath, 'r') as f:
                return json.load(f)
        except Exception as e:
            logger.error(f"Failed to load run report for {date}: {e}")
            return None

    def get_all_run_dates(self) -> List[str]:
        """Sorted dates (YYYY-MM-DD) that have a run report."""
        dates = []
        for filename in os.listdir(self.runs_dir):
            if filename.endswith('.json'):
                dates.append(filename[:-len('.json')])

        return sorted(dates)
