"""Pytest configuration for the TCP web server tests."""
import socket
import threading
import time

import pytest

from tcp_webserver import ServerConfig, WebServer


INDEX_BODY = b"<p>hi</p>"
STYLE_BODY = b"body { color: #221d10; }\n"
SCRIPT_BODY = b"console.log('ready');\n"


@pytest.fixture
def web_root(tmp_path):
    root = tmp_path / "webroot"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_BODY)
    (root / "about.htm").write_bytes(b"<h1>About</h1>")
    (root / "style.css").write_bytes(STYLE_BODY)
    (root / "app.js").write_bytes(SCRIPT_BODY)
    (root / "app.exe").write_bytes(b"MZ\x90\x00\x03")
    (root / "notes.txt").write_bytes(b"plain text")
    (root / "docs").mkdir()
    (root / "docs" / "guide.html").write_bytes(b"<h2>Guide</h2>")
    (root / "folder.html").mkdir()
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def log_file(tmp_path):
    return tmp_path / "logs" / "webserver.log"


@pytest.fixture
def make_config(web_root, log_file):
    def _make(**overrides):
        values = dict(port=0, web_root=str(web_root), log_file=str(log_file), host="127.0.0.1")
        values.update(overrides)
        return ServerConfig(**values)
    return _make


@pytest.fixture
def start_server(make_config):
    """Factory that runs WebServer.start() on a background thread."""
    servers = []

    def _start(**overrides):
        server = WebServer(make_config(**overrides))
        thread = threading.Thread(target=server.start, name="test-server", daemon=True)
        thread.start()
        assert server.ready.wait(5), "server did not start"
        servers.append((server, thread))
        return server

    yield _start

    for server, thread in servers:
        server.stop()
        thread.join(5)


@pytest.fixture
def server(start_server):
    return start_server()


def send_raw(address, payload: bytes, shutdown_write: bool = False, timeout: float = 5.0) -> bytes:
    """Send raw bytes to the server and read until it closes the connection."""
    with socket.create_connection(address, timeout=timeout) as sock:
        if payload:
            sock.sendall(payload)
        if shutdown_write:
            sock.shutdown(socket.SHUT_WR)
        chunks = []
        while True:
            data = sock.recv(65536)
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks)


def parse_response(raw: bytes):
    """Split a raw response into (status_code, headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("ascii").split("\r\n")
    status_code = int(lines[0].split()[1])
    headers = {}
    for line in lines[1:]:
        key, value = line.split(":", 1)
        headers[key.strip()] = value.strip()
    return status_code, headers, body


def wait_for_log(path, text, timeout: float = 5.0) -> str:
    """Poll the log file until text appears; returns the file contents."""
    deadline = time.monotonic() + timeout
    contents = ""
    while time.monotonic() < deadline:
        if path.exists():
            contents = path.read_text(encoding="utf-8")
            if text in contents:
                return contents
        time.sleep(0.05)
    return contents
