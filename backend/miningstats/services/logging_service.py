"""Logging setup and the ingestion run log."""

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"

RUN_LOG_COLUMNS = ["timestamp", "dataset", "success", "count", "duration_ms", "error"]


def setup_logging(level: str = "INFO", fmt: str = DEFAULT_LOG_FORMAT) -> None:
    """Configure root logging for the service process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=fmt, force=True)
    # aiohttp access noise is not useful at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


@dataclass
class IngestionLogEntry:
    """One ingestion trigger run."""
    timestamp: datetime
    dataset: str
    success: bool
    count: int
    duration_ms: int
    error: Optional[str] = None


class IngestionLogService:
    """Appends ingestion runs to ``ingestion_runs.csv`` for operators."""

    FILENAME = "ingestion_runs.csv"

    def __init__(self, log_dir: Union[str, Path]):
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / self.FILENAME

    def log_run(self, entry: IngestionLogEntry) -> None:
        """Append one row. Never raises; a broken log must not fail ingestion."""
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            write_header = not self.log_file.exists()
            with open(self.log_file, 'a', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                if write_header:
                    writer.writerow(RUN_LOG_COLUMNS)
                writer.writerow([
                    entry.timestamp.isoformat(),
                    entry.dataset,
                    entry.success,
                    entry.count,
                    entry.duration_ms,
                    entry.error or "",
                ])
            logger.debug(f"Logged ingestion run for {entry.dataset} to {self.log_file.name}")
        except OSError as e:
            logger.error(f"Failed to write ingestion run log: {e}")

    def read_runs(self, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Most recent runs last; ``limit`` keeps only the newest rows."""
        if not self.log_file.exists():
            return []
        with open(self.log_file, newline='', encoding='utf-8') as f:
            rows = list(csv.DictReader(f))
        if limit is not None:
            rows = rows[-limit:]
        return rows
