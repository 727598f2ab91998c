"""Thread-safe FIFO connecting two pipeline stages, with an optional bound."""

import logging
import queue
import threading

logger = logging.getLogger(__name__)

DROP_NEWEST = "drop_newest"
DROP_OLDEST = "drop_oldest"
BLOCK = "block"


class PipelineQueue:
    """FIFO queue shared by one stage's producer(s) and the next stage's consumer.

    ``maxsize=0`` makes the queue unbounded: producers never wait and nothing is
    dropped. With a positive ``maxsize`` the overflow policy decides what happens
    to a put on a full queue:

    - ``drop_newest``: the incoming item is discarded
    - ``drop_oldest``: the oldest queued item is evicted to make room
    - ``block``: the producer waits for space, giving up when *shutdown* is set
    """

    def __init__(self, name: str, maxsize: int = 0, overflow_policy: str = DROP_NEWEST,
                 shutdown_event: threading.Event | None = None):
        if overflow_policy not in (DROP_NEWEST, DROP_OLDEST, BLOCK):
            raise ValueError(f"Unknown overflow policy: {overflow_policy}")
        self.name = name
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._policy = overflow_policy
        self._shutdown = shutdown_event or threading.Event()
        self._evict_lock = threading.Lock()
        self._dropped = 0
        self._lock = threading.Lock()

    def put(self, item) -> bool:
        """Enqueue *item*. Returns False if the item (or nothing) was dropped."""
        try:
            self._queue.put_nowait(item)
            return True
        except queue.Full:
            pass

        if self._policy == DROP_OLDEST:
            return self._put_evicting(item)
        if self._policy == BLOCK:
            return self._put_blocking(item)

        self._count_drop()
        logger.warning("Queue %s full, dropping newest item", self.name)
        return False

    def _put_evicting(self, item) -> bool:
        with self._evict_lock:
            while True:
                try:
                    self._queue.put_nowait(item)
                    return True
                except queue.Full:
                    pass
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    continue
                self._count_drop()
                logger.warning("Queue %s full, evicted oldest item", self.name)

    def _put_blocking(self, item) -> bool:
        while not self._shutdown.is_set():
            try:
                self._queue.put(item, timeout=0.5)
                return True
            except queue.Full:
                continue
        self._count_drop()
        return False

    def _count_drop(self):
        with self._lock:
            self._dropped += 1

    def get(self, timeout: float | None = None):
        """Dequeue the next item, waiting up to *timeout* seconds. Returns None if none arrived."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list:
        """Return every item available right now, in FIFO order, without waiting."""
        items = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped
