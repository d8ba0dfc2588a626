import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

from didsmith import (
    HttpxTransport,
    KeyPair,
    Transport,
    WebConfig,
    create_web_document,
    default_engine,
)
from didsmith.errors import NotFound, ResolutionTimeout, Unreachable


class SlowHandler(BaseHTTPRequestHandler):
    header_delay = 0.0
    body_delay = 0.0
    status = 200
    body = b"{}"

    def do_GET(self):
        time.sleep(self.header_delay)
        self.send_response(self.status)
        self.send_header("Content-Type", "application/did+json")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        time.sleep(self.body_delay)
        try:
            self.wfile.write(self.body)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, *args):
        pass


@pytest.fixture
def server():
    servers = []

    def start(**attrs):
        handler = type("Handler", (SlowHandler,), attrs)
        httpd = ThreadingHTTPServer(("127.0.0.1", 0), handler)
        httpd.daemon_threads = True
        threading.Thread(target=httpd.serve_forever, daemon=True).start()
        servers.append(httpd)
        return httpd.server_address[1], handler

    yield start
    for httpd in servers:
        httpd.shutdown()
        httpd.server_close()


def test_httpx_transport_is_a_transport():
    assert isinstance(HttpxTransport(), Transport)


def test_fetch_returns_body(server):
    port, _ = server(body=b'{"ok": true}')
    with HttpxTransport() as transport:
        assert transport.fetch(f"http://127.0.0.1:{port}/did.json", timeout=5.0) == b'{"ok": true}'


def test_fetch_not_found(server):
    port, _ = server(status=404)
    with HttpxTransport() as transport:
        with pytest.raises(NotFound):
            transport.fetch(f"http://127.0.0.1:{port}/did.json", timeout=5.0)


def test_timeout_bounds_whole_exchange(server):
    # each phase alone fits the timeout, the two together do not
    port, _ = server(header_delay=0.7, body_delay=0.7)
    with HttpxTransport() as transport:
        started = time.monotonic()
        with pytest.raises(ResolutionTimeout):
            transport.fetch(f"http://127.0.0.1:{port}/did.json", timeout=1.0)
        elapsed = time.monotonic() - started
    assert 0.9 <= elapsed < 1.3


def test_default_timeout_applies(server):
    port, _ = server(header_delay=0.7, body_delay=0.7)
    with HttpxTransport(timeout=0.5) as transport:
        started = time.monotonic()
        with pytest.raises(ResolutionTimeout):
            transport.fetch(f"http://127.0.0.1:{port}/did.json")
    assert time.monotonic() - started < 0.8


def test_mock_transport_runs_in_worker():
    seen = []

    def handler(request):
        seen.append(threading.current_thread().name)
        return httpx.Response(200, content=b"{}")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with HttpxTransport(client=client, timeout=None) as transport:
        assert transport.fetch("https://example.com/did.json", timeout=1.0) == b"{}"
        assert transport.fetch("https://example.com/did.json", timeout=None) == b"{}"
    assert seen[0].startswith("didsmith-fetch")
    assert seen[1] == threading.current_thread().name


def test_engine_resolves_over_http(server):
    port, handler = server()
    doc = create_web_document(f"did:web:127.0.0.1%3A{port}", KeyPair.generate())
    handler.body = doc.to_json().encode()

    engine = default_engine(config=WebConfig(scheme="http"))
    assert engine.resolve(str(doc.id), timeout=5.0) == doc


def test_engine_timeout_bounds_resolution(server):
    port, handler = server(header_delay=0.7, body_delay=0.7)
    doc = create_web_document(f"did:web:127.0.0.1%3A{port}", KeyPair.generate())
    handler.body = doc.to_json().encode()

    engine = default_engine(config=WebConfig(scheme="http", timeout=30.0))
    started = time.monotonic()
    result = engine.resolve_result(str(doc.id), timeout=1.0)
    elapsed = time.monotonic() - started

    assert not result.ok
    assert result.metadata["error"] == "timeout"
    assert elapsed < 1.3
