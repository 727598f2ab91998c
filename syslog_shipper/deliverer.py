"""Deliverer — submits batch files to the store with bounded retry."""

import logging
import os
import shutil
import threading

from syslog_shipper.config import DeliveryConfig
from syslog_shipper.ingest_client import IngestClient
from syslog_shipper.metrics import PipelineMetrics
from syslog_shipper.models import IngestionJob
from syslog_shipper.pipeline_queue import PipelineQueue

logger = logging.getLogger(__name__)


class Deliverer:
    """Single consumer of the job queue.

    Each job gets up to ``max_retries`` submission attempts separated by
    ``ms_between_retries``. The batch file is deleted after a successful
    attempt; after the last failed attempt it is moved to ``dead_letter_dir``
    (or left where it is when that option is empty) and the job is dropped.
    """

    def __init__(self, config: DeliveryConfig, client: IngestClient, jobs: PipelineQueue,
                 shutdown_event: threading.Event, metrics: PipelineMetrics | None = None):
        self._config = config
        self._client = client
        self._jobs = jobs
        self._shutdown = shutdown_event
        self._metrics = metrics or PipelineMetrics()

    def run(self):
        """Job loop. Returns once the shutdown event is set."""
        while not self._shutdown.is_set():
            job = self._jobs.get(timeout=1.0)
            if job is None:
                continue

            try:
                self.process(job)
            except Exception:
                logger.exception("Unexpected error delivering %r", job)

            self._shutdown.wait(timeout=self._config.settle_delay_ms / 1000)

    def process(self, job: IngestionJob) -> bool:
        """Deliver one job and clean up its file. Returns True on success."""
        logger.debug("About to start ingestion into table %s using file %s",
                     job.table, job.file_path)

        if self.deliver(job):
            self._metrics.increment("deliveries_succeeded")
            logger.info("Finished ingestion into table %s using file %s (%d events)",
                        job.table, job.file_path, job.event_count)
            self._remove(job.file_path)
            return True

        if self._shutdown.is_set():
            logger.info("Shutdown during delivery of %s, leaving it for recovery", job.file_path)
            return False

        self._metrics.increment("deliveries_failed")
        logger.error("Giving up on %s after %d attempts", job.file_path, self._config.max_retries)
        self._dead_letter(job.file_path)
        return False

    def deliver(self, job: IngestionJob) -> bool:
        """Submit the job's file, retrying on failure. Returns True on success."""
        max_retries = self._config.max_retries
        for attempt in range(1, max_retries + 1):
            self._metrics.increment("delivery_attempts")
            try:
                self._client.submit(job.file_path, job.table, job.mapping, job.data_format)
                return True
            except Exception as exc:
                logger.warning(
                    "Could not ingest %s into table %s (attempt %d/%d): %s",
                    job.file_path, job.table, attempt, max_retries, exc,
                )

            if attempt < max_retries:
                if self._shutdown.wait(timeout=self._config.ms_between_retries / 1000):
                    return False
        return False

    def _remove(self, path: str):
        try:
            os.remove(path)
            logger.debug("Deleted file %s because of successful ingestion", path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not delete ingested file %s: %s", path, exc)

    def _dead_letter(self, path: str):
        dead_letter_dir = self._config.dead_letter_dir
        if not dead_letter_dir:
            logger.warning("Retaining undelivered file %s", path)
            return
        try:
            os.makedirs(dead_letter_dir, exist_ok=True)
            target = shutil.move(path, os.path.join(dead_letter_dir, os.path.basename(path)))
        except OSError as exc:
            logger.error("Could not move %s to %s: %s", path, dead_letter_dir, exc)
            return
        self._metrics.increment("files_dead_lettered")
        logger.warning("Moved undelivered file %s to %s", path, target)
