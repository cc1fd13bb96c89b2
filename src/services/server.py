"""
Bridge Listener - HTTP endpoint that carries the message channel.

Provides endpoints for:
- /health - Health check
- /status - Server status (JSON)
- /request - Submit a page message (POST)
- /request/status/{id} - Poll a pending request
"""

import json
import logging
import re
import threading
import time
from collections import defaultdict
from http.server import HTTPServer, BaseHTTPRequestHandler
from socketserver import ThreadingMixIn
from typing import Optional, TYPE_CHECKING

from PyQt6.QtCore import QObject, pyqtSignal

if TYPE_CHECKING:
    from .background import BackgroundService

logger = logging.getLogger(__name__)

SERVICE_NAME = "Wallet Relay"
SERVICE_VERSION = "0.1.0"


class ServerStats:
    """Track server statistics for current session."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.requests = 0
        self.errors = 0
        self.started_at: Optional[str] = None

    def start(self):
        from datetime import datetime
        self.started_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")


# Global server stats instance
server_stats = ServerStats()


class RateLimiter:
    """Limits requests per IP per minute."""

    def __init__(self, requests_per_minute: int = 300):
        self.requests_per_minute = requests_per_minute
        self._request_times: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def is_rate_limited(self, client_ip: str) -> bool:
        """Check if client has exceeded rate limit."""
        now = time.time()
        window_start = now - 60

        with self._lock:
            # Clean old entries
            self._request_times[client_ip] = [
                t for t in self._request_times[client_ip]
                if t > window_start
            ]
            if len(self._request_times[client_ip]) >= self.requests_per_minute:
                return True
            self._request_times[client_ip].append(now)
            return False

    def reset(self):
        """Reset all rate limiting state."""
        with self._lock:
            self._request_times.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


# Map error codes to appropriate HTTP status codes
ERROR_CODE_TO_HTTP_STATUS = {
    # 400 Bad Request - malformed request
    "INVALID_REQUEST": 400,
    "INVALID_JSON": 400,
    "INVALID_REQUEST_ID": 400,
    "POLICY_ERROR": 400,

    # 401 Unauthorized - wallet gate
    "AUTH_FAILED": 401,

    # 403 Forbidden - origin has not connected
    "NOT_CONNECTED": 403,

    # 404 Not Found
    "REQUEST_NOT_FOUND": 404,
    "NOT_FOUND": 404,

    # 409 Conflict - request of the same kind already pending
    "REQUEST_CONFLICT": 409,

    # 429 Too Many Requests
    "RATE_LIMIT_EXCEEDED": 429,

    # 503 Service Unavailable - temporary, retryable
    "PROVIDER_UNAVAILABLE": 503,
    "SERVICE_NOT_READY": 503,
}


def get_http_status_for_error(error_code: Optional[str]) -> int:
    """Get the appropriate HTTP status code for an error code."""
    return ERROR_CODE_TO_HTTP_STATUS.get(error_code, 400)


# Maximum request body size
MAX_CONTENT_LENGTH = 1 * 1024 * 1024

UUID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)

STATUS_PATH_PREFIX = "/request/status/"


class BridgeRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for bridge messages."""

    GET_ENDPOINTS = frozenset(["/status", "/health"])
    POST_ENDPOINTS = frozenset(["/request"])

    def log_message(self, format, *args):
        """Route access logs through logging at debug level."""
        logger.debug(f"{self.client_address[0]} - {format % args}")

    @property
    def background(self) -> Optional["BackgroundService"]:
        return getattr(self.server, "background", None)

    def _send_cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")

    def _send_json_response(self, status: int, data: dict):
        """Send a JSON response."""
        body = json.dumps(data).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self._send_cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def _send_error(self, code: str, error: str, status: Optional[int] = None):
        server_stats.errors += 1
        self._send_json_response(
            status or get_http_status_for_error(code),
            {"status": "error", "error": error, "code": code},
        )

    def _send_method_not_allowed(self, allowed_methods: list[str]):
        """Send 405 Method Not Allowed response."""
        self.send_response(405)
        self.send_header("Content-Type", "application/json")
        self._send_cors_headers()
        self.send_header("Allow", ", ".join(allowed_methods))
        self.end_headers()
        self.wfile.write(json.dumps({
            "status": "error",
            "error": "Method not allowed",
            "code": "METHOD_NOT_ALLOWED",
            "allowed_methods": allowed_methods
        }).encode())

    def _get_base_path(self) -> str:
        """Get the path without query string."""
        return self.path.split("?")[0]

    def _check_rate_limit(self) -> bool:
        """Check rate limit and send 429 if exceeded. Returns True if request should proceed."""
        if rate_limiter.is_rate_limited(self.client_address[0]):
            self.send_response(429)
            self.send_header("Content-Type", "application/json")
            self.send_header("Retry-After", "60")
            self.end_headers()
            self.wfile.write(json.dumps({
                "status": "error",
                "error": "Rate limit exceeded",
                "code": "RATE_LIMIT_EXCEEDED",
                "retry_after": 60
            }).encode())
            return False
        return True

    def do_GET(self):
        """Handle GET requests."""
        if not self._check_rate_limit():
            return

        base_path = self._get_base_path()

        if base_path in self.POST_ENDPOINTS:
            self._send_method_not_allowed(["POST"])
            return

        if base_path == "/health":
            self._send_json_response(200, {"status": "ok"})
        elif base_path == "/status":
            self._send_json_response(200, {
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "status": "ready" if self.background else "starting",
                "requests": server_stats.requests,
                "errors": server_stats.errors,
                "started_at": server_stats.started_at,
            })
        elif base_path.startswith(STATUS_PATH_PREFIX):
            request_id = base_path[len(STATUS_PATH_PREFIX):]
            if not UUID_PATTERN.match(request_id):
                self._send_error("INVALID_REQUEST_ID", "Invalid request ID format")
                return
            if not self.background:
                self._send_error("SERVICE_NOT_READY", "Service not ready")
                return
            result = self.background.get_request_status(request_id)
            status = result.get("status")
            if status == "pending":
                self._send_json_response(202, result)
            elif status == "done":
                self._send_json_response(200, result)
            else:
                self._send_json_response(get_http_status_for_error(result.get("code")), result)
        else:
            self._send_error("NOT_FOUND", "Not found")

    def do_POST(self):
        """Handle POST requests - page messages."""
        if not self._check_rate_limit():
            return

        base_path = self._get_base_path()

        if base_path in self.GET_ENDPOINTS:
            self._send_method_not_allowed(["GET"])
            return
        if base_path not in self.POST_ENDPOINTS:
            self._send_error("NOT_FOUND", "Not found")
            return

        try:
            content_length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            content_length = -1
        if content_length < 0:
            self._send_error("INVALID_REQUEST", "Invalid Content-Length")
            return
        if content_length > MAX_CONTENT_LENGTH:
            self._send_error("PAYLOAD_TOO_LARGE", f"Payload too large (max {MAX_CONTENT_LENGTH} bytes)", 413)
            return

        try:
            body = self.rfile.read(content_length).decode() if content_length > 0 else "{}"
            message = json.loads(body) if body else {}
        except (json.JSONDecodeError, UnicodeDecodeError):
            self._send_error("INVALID_JSON", "Invalid JSON")
            return
        if not isinstance(message, dict):
            self._send_error("INVALID_REQUEST", "Message must be an object")
            return

        # A browser-supplied Origin wins over whatever the body claims
        origin_header = self.headers.get("Origin")
        if origin_header and origin_header != "null":
            message["origin"] = origin_header

        if not self.background:
            self._send_error("SERVICE_NOT_READY", "Service not ready")
            return

        server_stats.requests += 1
        ack = self.background.handle_page_message(message)
        status = ack.get("status")
        if status == "pending":
            self._send_json_response(202, ack)
        elif status == "ok":
            self._send_json_response(200, ack)
        else:
            server_stats.errors += 1
            self._send_json_response(get_http_status_for_error(ack.get("code")), ack)

    def do_OPTIONS(self):
        """Handle CORS preflight."""
        self.send_response(200)
        self._send_cors_headers()
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()


class ThreadedHTTPServer(ThreadingMixIn, HTTPServer):
    """HTTP server that handles each request in a separate thread."""
    daemon_threads = True  # Don't block shutdown waiting for threads
    background: Optional["BackgroundService"] = None


class BridgeServer(QObject):
    """Manages the HTTP listener for bridge connections."""

    started = pyqtSignal(int)  # port
    stopped = pyqtSignal()
    error = pyqtSignal(str)

    def __init__(self, background: Optional["BackgroundService"] = None):
        super().__init__()
        self._background = background
        self._server: Optional[ThreadedHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._port = 0
        self._running = False

    @property
    def port(self) -> int:
        return self._port

    @property
    def is_running(self) -> bool:
        return self._running and self._server is not None

    def start(self, port: int = 9412, allow_lan: bool = False) -> bool:
        """
        Start the HTTP server on the specified port.

        Args:
            port: Port to listen on (0 picks a free one)
            allow_lan: If True, bind to 0.0.0.0 (all interfaces). If False, localhost only.
        """
        if self._running:
            return True

        bind_address = "0.0.0.0" if allow_lan else "127.0.0.1"

        try:
            self._server = ThreadedHTTPServer((bind_address, port), BridgeRequestHandler)
        except OSError as e:
            logger.error(f"Failed to start bridge listener on port {port}: {e}")
            self.error.emit(f"Failed to start server: {e}")
            return False

        self._server.background = self._background
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._run_server, daemon=True)
        self._thread.start()
        self._running = True
        server_stats.reset()
        server_stats.start()
        rate_limiter.reset()
        logger.info(f"Bridge listener on {bind_address}:{self._port}")
        self.started.emit(self._port)
        return True

    def stop(self):
        """Stop the HTTP server."""
        if self._server:
            self._running = False
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
            self.stopped.emit()

    def _run_server(self):
        """Run the server in a background thread."""
        if self._server:
            self._server.serve_forever()
