"""Startup recovery — re-queue batch files a previous run never delivered."""

import logging
import os

from syslog_shipper.config import BatchConfig
from syslog_shipper.models import IngestionJob, RecordFormat

logger = logging.getLogger(__name__)


def find_pending_batches(batch_dir: str) -> list[str]:
    """Return batch files directly inside *batch_dir*, oldest first."""
    if not os.path.isdir(batch_dir):
        return []

    paths = []
    for entry in os.scandir(batch_dir):
        if not entry.is_file():
            continue
        if RecordFormat.from_suffix(os.path.splitext(entry.name)[1]) is None:
            continue
        paths.append(entry.path)
    paths.sort(key=os.path.getmtime)
    return paths


def _count_lines(path: str) -> int:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return sum(1 for _ in f)


def recover_jobs(config: BatchConfig) -> list[IngestionJob]:
    """Build one IngestionJob per leftover batch file. Empty files are removed."""
    jobs = []
    for path in find_pending_batches(config.batch_dir):
        try:
            event_count = _count_lines(path)
        except OSError as exc:
            logger.warning("Skipping unreadable batch file %s: %s", path, exc)
            continue

        if event_count == 0:
            logger.info("Removing empty batch file %s", path)
            try:
                os.remove(path)
            except OSError as exc:
                logger.warning("Could not remove empty batch file %s: %s", path, exc)
            continue

        jobs.append(IngestionJob(
            file_path=path,
            table=config.table,
            mapping=config.mapping,
            data_format=RecordFormat.from_suffix(os.path.splitext(path)[1]),
            event_count=event_count,
        ))

    if jobs:
        logger.info("Recovered %d undelivered batch file(s) from %s", len(jobs), config.batch_dir)
    return jobs
