"""Tests for the Loki push client."""

import socket

import pytest

from forwarder.errors import DeliveryError
from forwarder.loki_client import LokiClient, build_push_payload
from forwarder.loki_stub import LokiStubServer
from forwarder.normalizer import NormalizedRecord


def _record(message="hello") -> NormalizedRecord:
    return NormalizedRecord(
        timestamp_ns="1707942655410000000",
        message=message,
        labels={"app": "graylog-forwarder", "source_index": "idx", "data_origin": "historical"},
    )


def _free_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestBuildPushPayload:
    def test_single_stream_single_entry(self):
        payload = build_push_payload(_record())
        assert payload == {
            "streams": [
                {
                    "stream": {
                        "app": "graylog-forwarder",
                        "source_index": "idx",
                        "data_origin": "historical",
                    },
                    "values": [["1707942655410000000", "hello"]],
                }
            ]
        }

    def test_labels_copied(self):
        record = _record()
        payload = build_push_payload(record)
        payload["streams"][0]["stream"]["extra"] = "x"
        assert "extra" not in record.labels


class TestLokiClientDelivery:
    def test_delivers_on_204(self, loki_stub):
        client = LokiClient(loki_stub.push_url, timeout=5)
        try:
            client.deliver(_record("first"))
        finally:
            client.close()
        assert len(loki_stub.received) == 1
        assert loki_stub.received[0]["streams"][0]["values"] == [
            ["1707942655410000000", "first"]
        ]
        assert loki_stub.content_types[0].startswith("application/json")

    def test_delivers_on_200(self):
        with LokiStubServer(status=200) as stub:
            client = LokiClient(stub.push_url, timeout=5)
            client.deliver(_record())
            client.close()
            assert len(stub.received) == 1

    def test_unicode_message(self, loki_stub):
        client = LokiClient(loki_stub.push_url, timeout=5)
        client.deliver(_record("café ☃"))
        client.close()
        assert loki_stub.received[0]["streams"][0]["values"][0][1] == "café ☃"


class TestLokiClientFailures:
    def test_server_error_reports_status_and_body(self, failing_loki_stub):
        client = LokiClient(failing_loki_stub.push_url, timeout=5)
        with pytest.raises(DeliveryError) as excinfo:
            client.deliver(_record())
        client.close()
        err = excinfo.value
        assert err.status_code == 500
        assert err.body == "ingester unavailable"
        assert err.network is False
        assert "500" in str(err)
        assert failing_loki_stub.rejected == 1

    def test_client_error_is_failure(self):
        with LokiStubServer(status=400, error_body="entry too far behind") as stub:
            client = LokiClient(stub.push_url, timeout=5)
            with pytest.raises(DeliveryError) as excinfo:
                client.deliver(_record())
            client.close()
        assert excinfo.value.status_code == 400
        assert "entry too far behind" in str(excinfo.value)

    def test_connection_refused_is_network_error(self):
        client = LokiClient(f"http://127.0.0.1:{_free_port()}/loki/api/v1/push", timeout=2)
        with pytest.raises(DeliveryError) as excinfo:
            client.deliver(_record())
        client.close()
        assert excinfo.value.network is True
        assert excinfo.value.status_code is None
