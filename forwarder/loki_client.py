"""HTTP client for the Loki push API."""

import logging

import requests

from forwarder.errors import DeliveryError
from forwarder.normalizer import NormalizedRecord

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = (200, 204)
MAX_ERROR_BODY = 500


def build_push_payload(record: NormalizedRecord) -> dict:
    """Wrap one record as a single stream with a single entry."""
    return {
        "streams": [
            {
                "stream": dict(record.labels),
                "values": [[record.timestamp_ns, record.message]],
            }
        ]
    }


class LokiClient:
    """Posts records to a Loki push endpoint, one request per record.

    A single instance is shared by all workers; requests.Session is safe
    for concurrent POSTs through its connection pool.
    """

    def __init__(self, push_url: str, timeout: float = 30.0,
                 session: requests.Session | None = None):
        self._push_url = push_url
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    @property
    def push_url(self) -> str:
        return self._push_url

    def deliver(self, record: NormalizedRecord):
        """Send one record. Raises DeliveryError on any failure, no retry."""
        payload = build_push_payload(record)
        try:
            resp = self._session.post(self._push_url, json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            raise DeliveryError(
                f"failed to send request to Loki at {self._push_url}: {e}",
                network=True,
            ) from e

        if resp.status_code not in SUCCESS_STATUSES:
            body = resp.text[:MAX_ERROR_BODY]
            raise DeliveryError(
                f"Loki returned non-200/204 status: {resp.status_code} - {body}",
                status_code=resp.status_code,
                body=body,
            )

    def close(self):
        self._session.close()
