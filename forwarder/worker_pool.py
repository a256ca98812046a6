"""Fixed-size pool of delivery threads draining one bounded queue."""

import logging
import queue
import threading
from typing import Callable

from forwarder.errors import ForwarderError

logger = logging.getLogger(__name__)

_STOP = object()


class WorkerPool:
    """Single-producer, multi-consumer pool.

    The producer calls submit() for each document and close() once it is
    done. close() enqueues one stop marker per worker behind the remaining
    documents, so workers exit only after the queue has been drained.
    """

    def __init__(self, worker_count: int, queue_size: int,
                 process: Callable[[dict], None],
                 shutdown_event: threading.Event | None = None):
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._worker_count = worker_count
        self._process = process
        self._shutdown = shutdown_event or threading.Event()
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._threads: list[threading.Thread] = []
        self._closed = False
        self._lock = threading.Lock()

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def queue_size(self) -> int:
        """Approximate number of documents waiting for a worker."""
        return self._queue.qsize()

    def start(self):
        for i in range(self._worker_count):
            t = threading.Thread(target=self._worker_loop, name=f"deliver-{i}", daemon=True)
            t.start()
            self._threads.append(t)
        logger.info("Started %d delivery workers (queue bound %d)",
                    self._worker_count, self._queue.maxsize)

    def submit(self, doc: dict):
        """Enqueue a document, blocking while the queue is full.

        Raises RuntimeError if the pool was closed or shutdown was requested
        while waiting for room.
        """
        if self._closed:
            raise RuntimeError("submit() called on a closed worker pool")
        while True:
            try:
                self._queue.put(doc, timeout=0.5)
                return
            except queue.Full:
                if self._shutdown.is_set():
                    raise RuntimeError("shutdown requested while queue was full")

    def close(self):
        """Signal end of input. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for _ in self._threads:
            self._queue.put(_STOP)

    def join(self, timeout: float | None = None):
        """Wait for every worker to finish draining the queue."""
        for t in self._threads:
            t.join(timeout)

    def _worker_loop(self):
        while True:
            doc = self._queue.get()
            try:
                if doc is _STOP:
                    return
                self._handle(doc)
            finally:
                self._queue.task_done()

    def _handle(self, doc: dict):
        try:
            self._process(doc)
        except ForwarderError as e:
            logger.error("Failed to forward document: %s", e)
        except Exception:
            logger.exception("Unexpected error while forwarding document")
