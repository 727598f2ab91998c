"""Batcher — groups queued lines into batch files on a size-or-time cadence."""

import logging
import os
import threading
import time
import uuid

from syslog_shipper.config import BatchConfig
from syslog_shipper.metrics import PipelineMetrics
from syslog_shipper.models import IngestionJob, RecordFormat
from syslog_shipper.pipeline_queue import PipelineQueue

logger = logging.getLogger(__name__)


class BatchAccumulator:
    """In-memory lines gathered since the last flush."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self.lines: list[str] = []
        self.event_count = 0
        self._last_flush = clock()

    def append(self, line: str):
        self.lines.append(line)
        self.event_count += 1

    @property
    def elapsed(self) -> float:
        """Seconds since the last flush (or creation)."""
        return self._clock() - self._last_flush

    def reset(self):
        """Clear lines, zero the count and restart the clock together."""
        self.lines = []
        self.event_count = 0
        self._last_flush = self._clock()


class Batcher:
    def __init__(self, config: BatchConfig, data_format: RecordFormat,
                 messages: PipelineQueue, jobs: PipelineQueue,
                 shutdown_event: threading.Event,
                 metrics: PipelineMetrics | None = None, clock=time.monotonic):
        self._config = config
        self._format = data_format
        self._messages = messages
        self._jobs = jobs
        self._shutdown = shutdown_event
        self._metrics = metrics or PipelineMetrics()
        self._time_limit = config.limit_in_minutes * 60
        self.accumulator = BatchAccumulator(clock)

    def run(self):
        """Tick loop. On shutdown, pending lines are flushed to disk before returning."""
        logger.info(
            "Batching into %s (flush when > %d events or > %.1f minutes)",
            self._config.batch_dir, self._config.limit_number_of_events,
            self._config.limit_in_minutes,
        )
        while not self._shutdown.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Unexpected error in batch loop")
            self._shutdown.wait(timeout=self._config.tick_interval_sec)

        for line in self._messages.drain():
            self.accumulator.append(line)
        if self.accumulator.event_count > 0:
            self.flush()

    def tick(self) -> IngestionJob | None:
        """Drain available lines, then flush if either threshold is exceeded."""
        for line in self._messages.drain():
            self.accumulator.append(line)

        if self.should_flush():
            return self.flush()
        return None

    def should_flush(self) -> bool:
        return (
            self.accumulator.event_count > self._config.limit_number_of_events
            or self.accumulator.elapsed > self._time_limit
        )

    def flush(self) -> IngestionJob | None:
        """Write the accumulator to a new batch file and queue a job for it.

        An empty accumulator only restarts the clock. A write failure loses
        this batch but leaves the loop running.
        """
        acc = self.accumulator
        if acc.event_count == 0:
            acc.reset()
            return None

        path = os.path.join(self._config.batch_dir, uuid.uuid4().hex + self._format.file_suffix)
        event_count = acc.event_count
        try:
            os.makedirs(self._config.batch_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                for line in acc.lines:
                    f.write(line + "\n")
        except OSError as exc:
            self._metrics.increment("flush_errors")
            logger.error("Could not write batch file %s, dropping %d events: %s",
                         path, event_count, exc)
            self._remove_partial(path)
            acc.reset()
            return None

        job = IngestionJob(
            file_path=path,
            table=self._config.table,
            mapping=self._config.mapping,
            data_format=self._format,
            event_count=event_count,
        )
        acc.reset()
        self._metrics.increment("batches_flushed")
        self._metrics.increment("events_flushed", event_count)
        logger.info("Created a file %s with %d events", path, event_count)

        if not self._jobs.put(job):
            logger.warning("Job queue full, batch file %s left on disk for recovery", path)
        return job

    @staticmethod
    def _remove_partial(path: str):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove partial batch file %s: %s", path, exc)
