"""Wires the scroll extractor to the delivery worker pool."""

import logging
import threading
import time
from dataclasses import dataclass

from forwarder.config import Config
from forwarder.extractor import ScrollExtractor
from forwarder.loki_client import LokiClient
from forwarder.metrics import Metrics, MetricsReporter
from forwarder.normalizer import normalize
from forwarder.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of a run.

    handed_off counts documents extracted and queued for delivery; it does
    not depend on whether Loki accepted them (see delivered / failed).
    """

    handed_off: int
    delivered: int
    failed: int
    skipped: int
    interrupted: bool = False


class MigrationPipeline:
    """One-shot OpenSearch index -> Loki migration."""

    def __init__(self, config: Config, source, loki: LokiClient,
                 shutdown_event: threading.Event | None = None):
        self._config = config
        self._source = source
        self._loki = loki
        self._shutdown = shutdown_event or threading.Event()
        self._metrics = Metrics()

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    def process_document(self, doc: dict):
        """Normalize and deliver one document. Errors propagate to the worker."""
        try:
            record = normalize(doc, self._config.index)
            t0 = time.monotonic()
            self._loki.deliver(record)
        except Exception:
            self._metrics.record_failed()
            raise
        self._metrics.record_delivered((time.monotonic() - t0) * 1000)

    def run(self) -> PipelineResult:
        """Extract everything, wait for delivery to drain, and return counts.

        Raises ExtractionError if extraction fails; documents already queued
        are still delivered before the error propagates.
        """
        config = self._config
        pool = WorkerPool(
            config.worker_count,
            config.queue_size,
            self.process_document,
            self._shutdown,
        )
        extractor = ScrollExtractor(
            self._source,
            page_size=config.page_size,
            scroll_expiry=config.scroll_expiry,
            shutdown_event=self._shutdown,
        )
        reporter = MetricsReporter(self._metrics, config.metrics_interval, pool.queue_size)

        def enqueue(doc: dict):
            pool.submit(doc)
            self._metrics.record_extracted()

        logger.info("Starting to query logs from OpenSearch index: %s", config.index)
        pool.start()
        reporter.start()
        try:
            extractor.extract(config.index, enqueue)
        except RuntimeError:
            if not self._shutdown.is_set():
                raise
            logger.warning("Shutdown requested while the queue was full, stopping extraction")
        except Exception:
            logger.error("Extraction aborted after %d documents; draining queue",
                         self._metrics.extracted)
            raise
        finally:
            self._metrics.record_skipped(extractor.skipped)
            pool.close()
            pool.join()
            reporter.stop()

        result = PipelineResult(
            handed_off=self._metrics.extracted,
            delivered=self._metrics.delivered,
            failed=self._metrics.failed,
            skipped=self._metrics.skipped,
            interrupted=self._shutdown.is_set(),
        )
        logger.info(
            "Finished. Successfully processed %d logs from OpenSearch to Loki "
            "(delivered=%d, failed=%d, skipped=%d).",
            result.handed_off, result.delivered, result.failed, result.skipped,
        )
        return result
