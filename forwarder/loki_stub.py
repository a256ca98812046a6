"""Minimal Loki push endpoint for local runs and tests."""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

logger = logging.getLogger(__name__)


class _PushHandler(BaseHTTPRequestHandler):
    """Accepts POST /loki/api/v1/push and records the JSON body."""

    def do_POST(self):
        stub = self.server.stub
        length = int(self.headers.get("Content-Length", 0))
        raw = self.rfile.read(length)
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            self._reply(400, b"invalid JSON")
            return

        status = stub.status
        if status in (200, 204):
            stub.record(payload, self.headers.get("Content-Type", ""))
        else:
            stub.record_rejected()
        self._reply(status, b"" if status == 204 else stub.error_body.encode("utf-8"))

    def _reply(self, status: int, body: bytes):
        self.send_response(status)
        if status != 204:
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if status != 204:
            self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


class LokiStubServer:
    """Threaded HTTP server answering every push with a fixed status.

    Stores accepted payloads in self.received for test assertions.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, status: int = 204,
                 error_body: str = "stub rejected push"):
        self.status = status
        self.error_body = error_body
        self.received: list[dict] = []
        self.content_types: list[str] = []
        self.rejected = 0
        self._lock = threading.Lock()
        self._httpd = ThreadingHTTPServer((host, port), _PushHandler)
        self._httpd.daemon_threads = True
        self._httpd.stub = self
        self._thread: threading.Thread | None = None

    @property
    def server_address(self) -> tuple:
        return self._httpd.server_address[:2]

    @property
    def push_url(self) -> str:
        host, port = self.server_address
        return f"http://{host}:{port}/loki/api/v1/push"

    def record(self, payload: dict, content_type: str):
        with self._lock:
            self.received.append(payload)
            self.content_types.append(content_type)

    def record_rejected(self):
        with self._lock:
            self.rejected += 1

    def start(self):
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()
        logger.info("Loki stub listening on %s:%d", *self.server_address)

    def stop(self):
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread:
            self._thread.join(timeout=5)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
