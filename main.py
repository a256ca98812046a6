"""Entry point — migrate historical logs from an OpenSearch index into Loki."""

import argparse
import logging
import signal
import sys
import threading

from forwarder.config import load_config, load_yaml_config
from forwarder.errors import ConfigError, ExtractionError
from forwarder.extractor import build_opensearch_client, check_source
from forwarder.loki_client import LokiClient
from forwarder.pipeline import MigrationPipeline

logger = logging.getLogger(__name__)


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="graylog-forwarder",
        description="Copy every document of an OpenSearch index into Loki.",
    )
    parser.add_argument("--input", required=True,
                        help="OpenSearch URL, e.g. http://localhost:9200")
    parser.add_argument("--output", required=True,
                        help="Loki push URL, e.g. http://localhost:3100/loki/api/v1/push")
    parser.add_argument("--index", required=True,
                        help="Source index name")
    parser.add_argument("--workers", type=int, default=None,
                        help="Number of concurrent delivery workers (default: 8)")
    parser.add_argument("--page-size", type=int, default=None,
                        help="Documents per scroll page (default: 1000)")
    parser.add_argument("--scroll", default=None,
                        help="Scroll context expiry, e.g. 1m or 5m (default: 1m)")
    parser.add_argument("--queue-size", type=int, default=None,
                        help="Max documents waiting for a worker (default: 1000)")
    parser.add_argument("--config", default=None,
                        help="Path to YAML config file")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level (default: INFO)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_cli_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args, load_yaml_config(args.config))
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1
    logging.getLogger().setLevel(config.log_level.upper())

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Forwarding index=%s from %s to %s (workers=%d, page_size=%d, scroll=%s)",
                config.index, config.opensearch_url, config.loki_url,
                config.worker_count, config.page_size, config.scroll_expiry)

    source = build_opensearch_client(config)
    loki = LokiClient(config.loki_url, timeout=config.request_timeout)
    try:
        check_source(source)
        result = MigrationPipeline(config, source, loki, shutdown_event).run()
    except ExtractionError as e:
        logger.error("Error during log transfer: %s", e)
        return 1
    finally:
        loki.close()
        source.close()

    if result.interrupted:
        logger.warning("Run interrupted before the index was exhausted")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
