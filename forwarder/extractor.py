"""Scroll-based extraction of every document in an OpenSearch index."""

import logging
import threading
from typing import Callable

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from forwarder.config import Config
from forwarder.errors import CursorProtocolError, ExtractionError

logger = logging.getLogger(__name__)

# _doc order keeps scroll pages disjoint
INITIAL_QUERY = {
    "query": {"match_all": {}},
    "sort": [{"_doc": "asc"}],
}


def build_opensearch_client(config: Config) -> OpenSearch:
    """Create the source client from config."""
    auth = None
    if config.opensearch_user:
        auth = (config.opensearch_user, config.opensearch_password or "")
    return OpenSearch(
        hosts=[config.opensearch_url],
        http_auth=auth,
        verify_certs=config.verify_certs,
        ssl_show_warn=config.verify_certs,
        timeout=config.request_timeout,
    )


def check_source(client) -> dict:
    """Probe the cluster once before starting. Raises ExtractionError if unreachable."""
    try:
        info = client.info()
    except OpenSearchException as e:
        raise ExtractionError(f"cannot reach OpenSearch: {e}") from e
    version = (info.get("version") or {}).get("number", "unknown")
    logger.info("Connected to OpenSearch cluster %s (version %s)",
                info.get("cluster_name", "?"), version)
    return info


class ScrollCursor:
    """Holds the current scroll id and clears it when the block exits.

    Clearing is attempted once, only if an id was ever obtained, and never
    raises: a failed clear just leaves the context to expire server-side.
    """

    def __init__(self, client):
        self._client = client
        self._scroll_id: str | None = None
        self._cleared = False

    @property
    def scroll_id(self) -> str | None:
        return self._scroll_id

    def update(self, scroll_id: str | None):
        if scroll_id:
            self._scroll_id = scroll_id

    def clear(self):
        if self._cleared or not self._scroll_id:
            return
        self._cleared = True
        logger.info("Clearing OpenSearch scroll ID: %s", self._scroll_id)
        try:
            self._client.clear_scroll(body={"scroll_id": [self._scroll_id]})
        except Exception as e:
            logger.warning("Failed to clear OpenSearch scroll: %s", e)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.clear()
        return False


class ScrollExtractor:
    """Pages through an index with the scroll API and hands each document on.

    Pages are requested one at a time: every document of a page is passed
    to the handler before the next page is fetched, so a blocking handler
    throttles extraction.
    """

    def __init__(self, client, page_size: int = 1000, scroll_expiry: str = "1m",
                 shutdown_event: threading.Event | None = None):
        self._client = client
        self._page_size = page_size
        self._scroll_expiry = scroll_expiry
        self._shutdown = shutdown_event or threading.Event()
        self._skipped = 0

    @property
    def skipped(self) -> int:
        """Hits dropped because they carried no usable _source."""
        return self._skipped

    def extract(self, index: str, handler: Callable[[dict], None]) -> int:
        """Stream every document of *index* into *handler*.

        Returns the number of documents handed to the handler. Raises
        ExtractionError on any source failure; the scroll is cleared either way.
        """
        handed = 0
        with ScrollCursor(self._client) as cursor:
            response = self._request(
                "initial search",
                self._client.search,
                index=index,
                body=INITIAL_QUERY,
                scroll=self._scroll_expiry,
                size=self._page_size,
            )
            page = 0
            while True:
                page += 1
                hits = self._decode_hits(response)
                cursor.update(response.get("_scroll_id"))
                if not hits:
                    logger.info("Scroll exhausted after %d page(s)", page - 1)
                    break

                if not response.get("_scroll_id"):
                    raise CursorProtocolError(
                        f"missing _scroll_id in OpenSearch response for page {page}"
                    )

                for hit in hits:
                    doc = hit.get("_source") if isinstance(hit, dict) else None
                    if not isinstance(doc, dict):
                        self._skipped += 1
                        logger.warning("Could not parse _source from hit: %.200r", hit)
                        continue
                    handler(doc)
                    handed += 1
                logger.debug("Page %d: %d hits, %d handed so far", page, len(hits), handed)

                if self._shutdown.is_set():
                    logger.warning("Shutdown requested, stopping extraction after page %d", page)
                    break

                response = self._request(
                    "scroll request",
                    self._client.scroll,
                    scroll_id=cursor.scroll_id,
                    scroll=self._scroll_expiry,
                )
        return handed

    def _request(self, what: str, call, **kwargs) -> dict:
        try:
            response = call(**kwargs)
        except OpenSearchException as e:
            raise ExtractionError(f"error performing OpenSearch {what}: {e}") from e
        if not isinstance(response, dict):
            raise ExtractionError(
                f"error decoding OpenSearch {what} response: expected an object, "
                f"got {type(response).__name__}"
            )
        return response

    @staticmethod
    def _decode_hits(response: dict) -> list:
        outer = response.get("hits")
        hits = outer.get("hits") if isinstance(outer, dict) else None
        if not isinstance(hits, list):
            raise ExtractionError("error decoding OpenSearch response: no hits.hits list")
        return hits
