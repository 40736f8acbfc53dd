#!/usr/bin/env python3
"""
Static File Web Server Using Raw TCP Sockets

This server accepts plain TCP connections, reads a single HTTP request line
and answers GET requests for a small whitelist of static file types:
- One thread per connection, or an optional bounded worker pool
- Static file serving (HTML, CSS, JavaScript) from a configured web root
- Security checks (directory traversal rejection, file type whitelist)
- Every response closes the connection (no keep-alive)
- Event log written to the console and to an append-only log file

Python Version: 3.8+
"""

import enum
import logging
import os
import queue
import signal
import socket
import sys
import threading
from typing import NamedTuple, Optional, Tuple


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_WEB_ROOT = "webroot"
DEFAULT_LOG_FILE = os.path.join("logs", "webserver.log")
DEFAULT_DOCUMENT = "index.html"
LISTEN_BACKLOG = 50
RECV_SIZE = 1024
ACCEPT_POLL_INTERVAL = 0.5
WORKER_POLL_INTERVAL = 1.0
DRAIN_TIMEOUT = 1.0
DRAIN_LIMIT = 65536

LOGGER_NAME = "tcp_webserver"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Security events sit between WARNING and ERROR
SECURITY = 35
logging.addLevelName(SECURITY, "SECURITY")

ALLOWED_CONTENT_TYPES = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
}
FALLBACK_CONTENT_TYPE = "application/octet-stream"

STATUS_MESSAGES = {
    200: "OK",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
}


class ServerConfig(NamedTuple):
    """Immutable server settings, fixed at construction time."""
    port: int = DEFAULT_PORT
    web_root: str = os.path.abspath(DEFAULT_WEB_ROOT)
    log_file: str = DEFAULT_LOG_FILE
    host: str = DEFAULT_HOST
    default_document: str = DEFAULT_DOCUMENT
    # None runs one thread per connection
    max_workers: Optional[int] = None
    recv_size: int = RECV_SIZE


class ParsedRequest(NamedTuple):
    method: str
    path: str


class FileExistenceStatus(enum.Enum):
    EXISTS = "exists"
    EXISTS_NO_PERMISSION = "exists_no_permission"
    DOES_NOT_EXIST = "does_not_exist"
    IS_DIRECTORY = "is_directory"
    PARENT_DIRECTORY_DOES_NOT_EXIST = "parent_directory_does_not_exist"
    UNKNOWN_ERROR = "unknown_error"


# ==========================
# Event Log
# ==========================
_log_lock = threading.Lock()
_log_file_path = None


class LogFileHandler(logging.FileHandler):
    """File sink that re-creates its directory and file if they disappear."""

    def emit(self, record):
        if not os.path.exists(self.baseFilename):
            try:
                os.makedirs(os.path.dirname(self.baseFilename), exist_ok=True)
            except OSError:
                self.handleError(record)
                return
            if self.stream is not None:
                self.stream.close()
                self.stream = None
        super().emit(record)


def setup_logging(log_file: str) -> logging.Logger:
    """
    Configure the process-wide event logger with console and file sinks.

    The logger is configured once; calling again with the same file is a
    no-op, calling with a different file swaps the file sink. If the file
    sink cannot be opened the logger keeps running console-only.

    Args:
        log_file: Path of the append-only log file

    Returns:
        The configured logger
    """
    global _log_file_path

    logger = logging.getLogger(LOGGER_NAME)
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    with _log_lock:
        if _log_file_path == log_file and logger.handlers:
            return logger

        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        logger.setLevel(logging.INFO)
        logger.propagate = False
        _log_file_path = log_file

        try:
            log_dir = os.path.dirname(os.path.abspath(log_file))
            os.makedirs(log_dir, exist_ok=True)
            file_handler = LogFileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to open log file {log_file}: {e}; logging to console only")
            return logger

        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# ==========================
# Paths and Content Types
# ==========================
def resolve_path(web_root: str, requested_path: str) -> str:
    """
    Map a requested URL path to a filesystem path under the web root.

    Leading separators are stripped so the result is always joined under
    web_root. No normalization or symlink resolution is done here; callers
    must reject ".." before resolving.
    """
    return os.path.join(web_root, requested_path.lstrip("/"))


def is_allowed_extension(extension: str) -> bool:
    return extension.lower() in ALLOWED_CONTENT_TYPES


def get_mime_type(extension: str) -> str:
    """Content type for an extension, application/octet-stream if unknown."""
    return ALLOWED_CONTENT_TYPES.get(extension.lower(), FALLBACK_CONTENT_TYPE)


def check_file_existence(path: str) -> FileExistenceStatus:
    """
    Probe a filesystem path and classify the result.

    Diagnostic helper only; the serving path does its own checks.

    Args:
        path: Filesystem path to probe

    Returns:
        FileExistenceStatus describing the path
    """
    try:
        if os.path.isdir(path):
            return FileExistenceStatus.IS_DIRECTORY
        os.stat(path)
        if not os.access(path, os.R_OK):
            return FileExistenceStatus.EXISTS_NO_PERMISSION
        return FileExistenceStatus.EXISTS
    except PermissionError:
        return FileExistenceStatus.EXISTS_NO_PERMISSION
    except FileNotFoundError:
        parent = os.path.dirname(os.path.abspath(path))
        if not os.path.isdir(parent):
            return FileExistenceStatus.PARENT_DIRECTORY_DOES_NOT_EXIST
        return FileExistenceStatus.DOES_NOT_EXIST
    except (OSError, ValueError):
        return FileExistenceStatus.UNKNOWN_ERROR


# ==========================
# HTTP Framing
# ==========================
def read_request(client_socket: socket.socket, recv_size: int = RECV_SIZE) -> str:
    """Single blocking read; the request line is assumed to fit in one chunk."""
    data = client_socket.recv(recv_size)
    return data.decode("ascii", errors="replace")


def parse_request_line(raw_request: str) -> Optional[ParsedRequest]:
    """
    Extract method and path from the first line of a raw request.

    Args:
        raw_request: Decoded request text

    Returns:
        ParsedRequest, or None if the line has fewer than two tokens
    """
    lines = raw_request.strip().splitlines()
    if not lines:
        return None

    parts = lines[0].split()
    if len(parts) < 2:
        return None

    return ParsedRequest(method=parts[0], path=parts[1])


def build_response(status_code: int, content_type: str, body: bytes) -> bytes:
    """
    Serialize a complete response: status line, headers, blank line, body.

    Args:
        status_code: HTTP status code
        content_type: Value of the Content-Type header
        body: Raw body bytes, sent unmodified

    Returns:
        Wire bytes of the response
    """
    status_text = STATUS_MESSAGES.get(status_code, "Unknown Error")
    header = (
        f"HTTP/1.1 {status_code} {status_text}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        f"Connection: close\r\n"
        f"\r\n"
    )
    return header.encode("ascii") + body


def build_error_page(status_code: int, message: str = "") -> bytes:
    """Minimal HTML error page naming the status code and reason phrase."""
    status_text = STATUS_MESSAGES.get(status_code, "Unknown Error")
    detail = f"<p>{message}</p>" if message else ""
    page = (
        f"<html><head><title>{status_code} {status_text}</title></head>"
        f"<body><h1>Error {status_code}: {status_text}</h1>{detail}</body></html>"
    )
    return page.encode("utf-8")


# ==========================
# Server
# ==========================
class WebServer:
    """
    Static file server over raw TCP sockets.

    start() blocks in the accept loop until stop() is called from another
    thread or a signal handler. Each connection is handled on its own thread,
    or by a fixed pool of workers when config.max_workers is set.
    """

    def __init__(self, config: ServerConfig):
        """
        Initialize the server with an immutable configuration.

        Args:
            config: Server settings (port, web root, log file, pool size)
        """
        if config.max_workers is not None and config.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.config = config._replace(web_root=os.path.abspath(config.web_root))
        self.logger = setup_logging(self.config.log_file)

        self.server_socket = None
        self.ready = threading.Event()
        self._running = threading.Event()
        self._connection_queue = queue.Queue()
        self._thread_pool = []

    @property
    def running(self) -> bool:
        return self._running.is_set()

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port), or None before start() has bound."""
        if self.server_socket is None or not self.ready.is_set() or self.server_socket.fileno() == -1:
            return None
        return self.server_socket.getsockname()[:2]

    def start(self):
        """Bind the listening socket and accept connections until stopped."""
        config = self.config
        try:
            self.logger.info("Server starting...")
            self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.server_socket.bind((config.host, config.port))
            self.server_socket.listen(LISTEN_BACKLOG)
            self.server_socket.settimeout(ACCEPT_POLL_INTERVAL)
        except OSError as e:
            self.logger.critical(f"Fatal error during server startup: {e}")
            if self.server_socket is not None:
                self.server_socket.close()
            raise

        self._running.set()
        host, port = self.server_socket.getsockname()[:2]
        self.logger.info(f"Server started on {host}:{port}")
        self.logger.info(f"Serving files from: {config.web_root}")
        self.logger.info(f"Logging to: {config.log_file}")

        if config.max_workers is not None:
            self._start_worker_pool(config.max_workers)
        else:
            self.logger.info("Worker mode: one thread per connection")

        self.ready.set()
        self._accept_loop()

    def _accept_loop(self):
        while self._running.is_set():
            try:
                client_socket, client_address = self.server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running.is_set() or self.server_socket.fileno() == -1:
                    break
                self.logger.error(f"Error accepting client: {e}")
                continue

            self.logger.info(f"Client connected: {client_address[0]}:{client_address[1]}")
            self._dispatch(client_socket, client_address)

        # A connection accepted just before stop() may have been queued after its drain
        self._drop_queued_connections()

    def _dispatch(self, client_socket: socket.socket, client_address: Tuple[str, int]):
        if self._thread_pool:
            self._connection_queue.put((client_socket, client_address))
            return

        try:
            thread = threading.Thread(
                target=self.handle_connection,
                args=(client_socket, client_address),
                name=f"Conn-{client_address[0]}:{client_address[1]}",
                daemon=True,
            )
            thread.start()
        except RuntimeError as e:
            self.logger.error(f"Could not start handler thread for {client_address[0]}:{client_address[1]}: {e}")
            client_socket.close()

    def _start_worker_pool(self, max_workers: int):
        for i in range(max_workers):
            thread = threading.Thread(target=self._worker_thread, name=f"Worker-{i + 1}", daemon=True)
            thread.start()
            self._thread_pool.append(thread)
        self.logger.info(f"Worker mode: bounded pool of {max_workers} threads")

    def _worker_thread(self):
        """Worker thread that processes connections from the queue."""
        while self._running.is_set():
            try:
                client_socket, client_address = self._connection_queue.get(timeout=WORKER_POLL_INTERVAL)
            except queue.Empty:
                continue

            try:
                self.handle_connection(client_socket, client_address)
            finally:
                self._connection_queue.task_done()

    def handle_connection(self, client_socket: socket.socket, client_address: Tuple[str, int]):
        """
        Serve exactly one request on a connection, then close it.

        Never raises: unexpected failures become a 500 response.

        Args:
            client_socket: Accepted client socket
            client_address: Client address tuple (host, port)
        """
        client_info = f"{client_address[0]}:{client_address[1]}"

        with client_socket:
            try:
                self._process_connection(client_socket, client_info)
            except Exception as e:
                self.logger.error(f"Error handling client {client_info}: {e}")
                self._send_error_response(client_socket, 500, client_info)
            finally:
                self._finish_connection(client_socket)
                self.logger.info(f"Client disconnected: {client_info}")

    def _finish_connection(self, client_socket: socket.socket):
        """
        Half-close and discard unread input so close() does not reset the
        connection and destroy a response the client has not read yet.
        """
        try:
            client_socket.shutdown(socket.SHUT_WR)
            client_socket.settimeout(DRAIN_TIMEOUT)
            discarded = 0
            while discarded < DRAIN_LIMIT:
                data = client_socket.recv(4096)
                if not data:
                    break
                discarded += len(data)
        except OSError:
            # Peer gone or timed out; the socket is closed either way
            pass

    def _process_connection(self, client_socket: socket.socket, client_info: str):
        try:
            raw_request = read_request(client_socket, self.config.recv_size)
        except OSError as e:
            self.logger.warning(f"Unreadable request from {client_info}: {e}")
            raw_request = ""

        if not raw_request:
            self.logger.warning(f"Empty request from {client_info}")
            self._send_error_response(client_socket, 400, client_info)
            return

        # Only the request line, escaped, so clients cannot inject log lines
        lines = raw_request.strip().splitlines()
        request_line = lines[0] if lines else ""
        self.logger.info(f"Request from {client_info}: {request_line!r}")

        request = parse_request_line(raw_request)
        if request is None or request.method.upper() != "GET":
            self.logger.warning(f"Invalid method from {client_info}")
            self._send_error_response(client_socket, 405, client_info)
            return

        requested_path = request.path
        if ".." in requested_path:
            self.logger.log(SECURITY, f"Potential directory traversal attempt from {client_info}: {requested_path}")
            self._send_error_response(client_socket, 403, client_info, "Directory traversal not allowed")
            return

        if requested_path == "/":
            requested_path = self.config.default_document

        file_path = resolve_path(self.config.web_root, requested_path)
        self.logger.info(f"Serving file for {client_info}: {file_path}")
        self.serve_file(client_socket, file_path, client_info)

    def serve_file(self, client_socket: socket.socket, file_path: str, client_info: str):
        """
        Send a whitelisted file, or the matching error page.

        Args:
            client_socket: Client socket connection
            file_path: Resolved filesystem path
            client_info: host:port label used in log entries
        """
        extension = os.path.splitext(file_path)[1].lower()
        if not is_allowed_extension(extension):
            self.logger.log(SECURITY, f"Attempt to access unsupported file type from {client_info}: {extension or '(none)'}")
            self._send_error_response(client_socket, 403, client_info, "Unsupported file type")
            return

        if not os.path.isfile(file_path):
            self.logger.warning(f"File not found: {file_path}")
            self._send_error_response(client_socket, 404, client_info)
            return

        try:
            with open(file_path, "rb") as f:
                content = f.read()
        except OSError as e:
            self.logger.error(f"Error serving file {file_path}: {e}")
            self._send_error_response(client_socket, 500, client_info)
            return

        client_socket.sendall(build_response(200, get_mime_type(extension), content))
        self.logger.info(f"Successfully served file: {file_path} ({len(content)} bytes)")

    def _send_error_response(self, client_socket: socket.socket, status_code: int, client_info: str, message: str = ""):
        """Send an error page; a failed send is logged, not raised."""
        body = build_error_page(status_code, message)
        try:
            client_socket.sendall(build_response(status_code, "text/html", body))
        except OSError as e:
            self.logger.error(f"Error sending {status_code} response to {client_info}: {e}")
            return
        self.logger.warning(f"Sent error response to {client_info}: {status_code} {STATUS_MESSAGES[status_code]}")

    def stop(self):
        """Stop accepting connections. In-flight handlers run to completion."""
        was_running = self._running.is_set()
        self._running.clear()

        if self.server_socket is not None:
            try:
                self.server_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Listener already closed
                pass
            self.server_socket.close()

        self._drop_queued_connections()

        if was_running:
            self.logger.info("Server stopped")

    def _drop_queued_connections(self):
        while True:
            try:
                client_socket, client_address = self._connection_queue.get_nowait()
            except queue.Empty:
                break
            self.logger.warning(f"Dropping queued connection {client_address[0]}:{client_address[1]}")
            client_socket.close()
            self._connection_queue.task_done()


# ==========================
# Entry Point
# ==========================
def main(argv=None):
    """
    Command line entry point: tcp-webserver [port] [web_root] [log_file] [max_workers]
    """
    argv = sys.argv if argv is None else argv

    port = DEFAULT_PORT
    web_root = DEFAULT_WEB_ROOT
    log_file = DEFAULT_LOG_FILE
    max_workers = None

    if len(argv) >= 2:
        try:
            port = int(argv[1])
        except ValueError:
            print("Error: Port must be an integer")
            sys.exit(1)

    if len(argv) >= 3:
        web_root = argv[2]

    if len(argv) >= 4:
        log_file = argv[3]

    if len(argv) >= 5:
        try:
            max_workers = int(argv[4])
        except ValueError:
            print("Error: Max workers must be an integer")
            sys.exit(1)

    if not (0 <= port <= 65535):
        print("Error: Port must be between 0 and 65535")
        sys.exit(1)

    if max_workers is not None and max_workers < 1:
        print("Error: Max workers must be at least 1")
        sys.exit(1)

    config = ServerConfig(
        port=port,
        web_root=os.path.abspath(web_root),
        log_file=log_file,
        max_workers=max_workers,
    )
    server = WebServer(config)

    def _signal_handler(signum, frame):
        server.logger.info(f"Received signal {signum}, stopping server...")
        server.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    print("Press Ctrl+C to stop the server")
    try:
        server.start()
    except OSError as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()


"""
===============================================================================
README - TCP Static File Web Server
===============================================================================

## Running the Server
```bash
# Defaults: port 8080, ./webroot, logs/webserver.log, one thread per connection
python tcp_webserver.py

# Custom port and web root
python tcp_webserver.py 8000 /srv/site

# Custom log file and a bounded pool of 8 workers
python tcp_webserver.py 8000 /srv/site /var/log/site.log 8
```

## Request Handling
Only the request line is read (a single 1024 byte read). Checks run in order:
1. Empty request -> 400 Bad Request
2. Malformed line or method other than GET -> 405 Method Not Allowed
3. Path containing ".." -> 403 Forbidden (SECURITY log entry)
4. "/" is served as index.html
5. Extension outside .html/.htm/.css/.js -> 403 Forbidden
6. Missing file -> 404 Not Found
7. Read failure or any unexpected error -> 500 Internal Server Error

## Known Limitations
- Traversal protection is a substring check on the raw path. Encoded forms
  such as %2e%2e are not decoded, so they are not served either, but
  symlinks inside the web root are followed.
- No read timeout: a silent client holds its worker until it disconnects.
- Unbounded mode starts one thread per connection with no cap; pass
  max_workers to bound it.
- Query strings are not stripped, so "/index.html?x=1" is rejected as an
  unsupported file type.
"""
