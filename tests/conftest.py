import pytest
from opensearchpy.exceptions import ConnectionError as OpenSearchConnectionError

from forwarder.loki_stub import LokiStubServer


class FakeOpenSearch:
    """Scripted stand-in for opensearchpy.OpenSearch.

    ``pages`` is a list of full response dicts (or exceptions to raise)
    served in order by search() then scroll(). Calls are recorded.
    """

    def __init__(self, pages, clear_error=None, info_error=None):
        self._pages = list(pages)
        self._clear_error = clear_error
        self._info_error = info_error
        self.search_calls: list[dict] = []
        self.scroll_calls: list[dict] = []
        self.cleared: list[list[str]] = []
        self.closed = False

    def _next(self):
        page = self._pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    def info(self):
        if self._info_error:
            raise self._info_error
        return {"cluster_name": "fake", "version": {"number": "2.11.0"}}

    def search(self, **kwargs):
        self.search_calls.append(kwargs)
        return self._next()

    def scroll(self, **kwargs):
        self.scroll_calls.append(kwargs)
        return self._next()

    def clear_scroll(self, body=None, **kwargs):
        self.cleared.append(body["scroll_id"])
        if self._clear_error:
            raise self._clear_error

    def close(self):
        self.closed = True


def make_doc(i: int, **fields) -> dict:
    doc = {
        "timestamp": f"2024-02-14 20:{(i // 60) % 60:02d}:{i % 60:02d}.{i % 1000:03d}",
        "message": f"log line {i}",
        "level": 6,
        "host": "web-1",
        "app": "billing",
        "seq": i,
    }
    doc.update(fields)
    return doc


def make_page(docs, scroll_id="scroll-1") -> dict:
    page = {"hits": {"hits": [{"_index": "graylog_0", "_source": d} for d in docs]}}
    if scroll_id is not None:
        page["_scroll_id"] = scroll_id
    return page


def paged_source(sizes, scroll_id="scroll-1") -> FakeOpenSearch:
    """Source serving pages of the given sizes followed by an empty page."""
    pages = []
    seq = 0
    for size in sizes:
        pages.append(make_page([make_doc(seq + j) for j in range(size)], scroll_id))
        seq += size
    pages.append(make_page([], scroll_id))
    return FakeOpenSearch(pages)


@pytest.fixture
def loki_stub():
    with LokiStubServer() as server:
        yield server


@pytest.fixture
def failing_loki_stub():
    with LokiStubServer(status=500, error_body="ingester unavailable") as server:
        yield server


@pytest.fixture
def unreachable_error():
    return OpenSearchConnectionError("N/A", "connection refused", None)
