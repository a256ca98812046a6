"""Thread-safe run counters and periodic progress logging."""

import logging
import threading
import time

logger = logging.getLogger(__name__)


class Metrics:
    """Counters shared by the extractor thread and the delivery workers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._started = time.monotonic()
        self._extracted = 0
        self._skipped = 0
        self._delivered = 0
        self._failed = 0
        self._latency_total = 0.0
        self._latency_max = 0.0

    def record_extracted(self):
        with self._lock:
            self._extracted += 1

    def record_skipped(self, count: int = 1):
        """Record hits dropped before reaching the queue."""
        with self._lock:
            self._skipped += count

    def record_delivered(self, latency_ms: float):
        """Record a successful push with its latency in milliseconds."""
        with self._lock:
            self._delivered += 1
            self._latency_total += latency_ms
            self._latency_max = max(self._latency_max, latency_ms)

    def record_failed(self):
        """Record a document that failed normalization or delivery."""
        with self._lock:
            self._failed += 1

    @property
    def extracted(self) -> int:
        with self._lock:
            return self._extracted

    @property
    def delivered(self) -> int:
        with self._lock:
            return self._delivered

    @property
    def failed(self) -> int:
        with self._lock:
            return self._failed

    @property
    def skipped(self) -> int:
        with self._lock:
            return self._skipped

    def snapshot(self) -> dict:
        """Read all counters atomically."""
        with self._lock:
            elapsed = time.monotonic() - self._started
            done = self._delivered + self._failed
            return {
                "extracted": self._extracted,
                "skipped": self._skipped,
                "delivered": self._delivered,
                "failed": self._failed,
                "avg_latency_ms": (
                    self._latency_total / self._delivered if self._delivered else 0.0
                ),
                "max_latency_ms": self._latency_max,
                "docs_per_sec": done / elapsed if elapsed > 0 else 0.0,
            }


class MetricsReporter:
    """Background thread that logs a progress line every *interval* seconds."""

    def __init__(self, metrics: Metrics, interval: float, queue_size=None):
        self._metrics = metrics
        self._interval = interval
        self._queue_size = queue_size
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self):
        """Start the reporter thread. A non-positive interval disables it."""
        if self._interval <= 0:
            return
        self._thread = threading.Thread(target=self._report_loop, daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def report(self):
        snapshot = self._metrics.snapshot()
        queued = self._queue_size() if self._queue_size else 0
        logger.info(
            "Progress: extracted=%d delivered=%d failed=%d skipped=%d "
            "queued=%d avg_latency=%.1fms rate=%.1f docs/s",
            snapshot["extracted"], snapshot["delivered"], snapshot["failed"],
            snapshot["skipped"], queued, snapshot["avg_latency_ms"],
            snapshot["docs_per_sec"],
        )

    def _report_loop(self):
        while not self._stop.wait(self._interval):
            self.report()
