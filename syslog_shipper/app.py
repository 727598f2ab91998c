"""ShipperApp — wires the listener, batcher and deliverer together."""

import logging
import threading

from syslog_shipper.batcher import Batcher
from syslog_shipper.config import Config
from syslog_shipper.dashboard import create_dashboard_app, run_dashboard
from syslog_shipper.deliverer import Deliverer
from syslog_shipper.ingest_client import IngestClient, KustoIngestClient
from syslog_shipper.listener import SyslogListener
from syslog_shipper.metrics import PipelineMetrics
from syslog_shipper.models import RecordFormat
from syslog_shipper.pipeline_queue import PipelineQueue
from syslog_shipper.recovery import recover_jobs

logger = logging.getLogger(__name__)


class ShipperApp:
    """Owns the two queues and the three pipeline threads.

    Listener -> messages -> Batcher -> jobs -> Deliverer -> store
    """

    def __init__(self, config: Config, shutdown_event: threading.Event,
                 client: IngestClient | None = None):
        self._config = config
        self._shutdown = shutdown_event
        self._client = client
        self._threads: dict[str, threading.Thread] = {}
        self.metrics = PipelineMetrics()

        self.messages = PipelineQueue(
            "messages", config.listener.queue_size, config.listener.overflow_policy, shutdown_event,
        )
        self.jobs = PipelineQueue(
            "jobs", config.batch.queue_size, config.batch.overflow_policy, shutdown_event,
        )
        self.metrics.register_gauge("messages_queued", self.messages.qsize)
        self.metrics.register_gauge("jobs_queued", self.jobs.qsize)
        self.metrics.register_gauge("messages_dropped", lambda: self.messages.dropped)
        self.metrics.register_gauge("jobs_dropped", lambda: self.jobs.dropped)

        self.listener = SyslogListener(config.listener, self.messages, shutdown_event, self.metrics)
        self.batcher = Batcher(
            config.batch, RecordFormat(config.listener.record_format),
            self.messages, self.jobs, shutdown_event, self.metrics,
        )
        self.deliverer = None

    def start(self):
        """Acquire the socket and the store session, then start every thread.

        Raises if either cannot be acquired; nothing is started in that case.
        """
        if self._client is None:
            self._client = KustoIngestClient(self._config.delivery)
        self.listener.bind()
        self.deliverer = Deliverer(
            self._config.delivery, self._client, self.jobs, self._shutdown, self.metrics,
        )

        self._start_thread("listener", self.listener.run)
        self._start_thread("batcher", self.batcher.run)
        self._start_thread("deliverer", self.deliverer.run)
        logger.info("Created %d threads to work on ingestion of syslog data", len(self._threads))

        if self._config.dashboard_port:
            app = create_dashboard_app(self.metrics, self.thread_status)
            dash = threading.Thread(
                target=run_dashboard, args=(app, self._config.dashboard_port),
                name="dashboard", daemon=True,
            )
            dash.start()
            logger.info("Dashboard running on port %d", self._config.dashboard_port)

        if self._config.batch.recover_on_startup:
            self._requeue_leftovers()

    def _requeue_leftovers(self):
        """Queue batch files from a previous run behind a running deliverer.

        Files the job queue refuses stay on disk for the next start.
        """
        for job in recover_jobs(self._config.batch):
            if self._shutdown.is_set():
                break
            if self.jobs.put(job):
                self.metrics.increment("files_recovered")
            else:
                logger.warning("Job queue full, leaving %s for the next start", job.file_path)

    def _start_thread(self, name: str, target):
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads[name] = thread

    def thread_status(self) -> dict[str, bool]:
        return {name: t.is_alive() for name, t in self._threads.items()}

    def wait(self):
        """Block until the shutdown event is set."""
        while not self._shutdown.wait(timeout=1.0):
            pass

    def stop(self, timeout: float = 10.0):
        """Signal every unit to stop, join the threads and release resources."""
        self._shutdown.set()
        for name, thread in self._threads.items():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Thread %s did not stop within %.1fs", name, timeout)
        self.listener.close()
        if self._client is not None:
            self._client.close()
        logger.info("Syslog shipper stopped. Stats: %s", self.metrics.snapshot())
