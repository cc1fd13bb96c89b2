"""
Bridge transports - How a page's messages reach the background.

A transport sends one message and returns the background's immediate ack.
For pending requests it later calls on_result(result_message) exactly once
the background reports a final result.
"""

import json
import logging
import threading
import time
import urllib.error
import urllib.request
from typing import Callable, Optional, Protocol, TYPE_CHECKING

from models import ProviderUnavailableError

if TYPE_CHECKING:
    from services.background import BackgroundService

logger = logging.getLogger(__name__)

DEFAULT_BRIDGE_URL = "http://127.0.0.1:9412"

ResultCallback = Callable[[dict], None]


class Transport(Protocol):
    def is_available(self) -> bool:
        ...

    def send(self, message: dict, on_result: ResultCallback) -> dict:
        ...


class LocalTransport:
    """In-process transport straight into a BackgroundService."""

    def __init__(self, background: Optional["BackgroundService"]):
        self.background = background

    def is_available(self) -> bool:
        return self.background is not None

    def send(self, message: dict, on_result: ResultCallback) -> dict:
        if self.background is None:
            raise ProviderUnavailableError("Wallet is not available")
        return self.background.handle_page_message(message, reply=on_result)


class HttpTransport:
    """
    Talks to the bridge listener over HTTP.

    POST /request returns the ack; pending requests are then polled on
    GET /request/status/{id} from a daemon thread.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BRIDGE_URL,
        poll_interval: float = 0.5,
        timeout: float = 10.0,
        max_poll_failures: int = 10,
        opener: Callable = urllib.request.urlopen,
    ):
        """
        Args:
            base_url: Listener address, e.g. http://127.0.0.1:9412
            poll_interval: Seconds between status polls
            timeout: Per-request socket timeout
            max_poll_failures: Consecutive failed polls before giving up
            opener: urlopen-compatible callable
        """
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_poll_failures = max_poll_failures
        self._opener = opener

    def _request(self, method: str, path: str, body: Optional[dict] = None,
                 origin: Optional[str] = None) -> dict:
        """
        One HTTP exchange. Error statuses still carry a JSON body.

        Raises:
            ProviderUnavailableError: Nothing answered, or what answered
                is not the wallet (a success body that is not a JSON object)
        """
        data = json.dumps(body).encode() if body is not None else None
        headers = {"Content-Type": "application/json"}
        if origin:
            headers["Origin"] = origin
        req = urllib.request.Request(
            f"{self.base_url}{path}",
            data=data,
            headers=headers,
            method=method,
        )
        try:
            with self._opener(req, timeout=self.timeout) as resp:
                reply = json.loads(resp.read().decode())
        except urllib.error.HTTPError as e:
            try:
                reply = json.loads(e.read().decode())
            except (json.JSONDecodeError, UnicodeDecodeError):
                reply = None
            if not isinstance(reply, dict):
                reply = {"status": "error", "code": "HTTP_ERROR", "error": f"HTTP {e.code}"}
            return reply
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProviderUnavailableError(f"Unexpected reply from {self.base_url}: {e}") from e
        except (urllib.error.URLError, OSError) as e:
            raise ProviderUnavailableError(f"Wallet is not reachable at {self.base_url}: {e}") from e
        if not isinstance(reply, dict):
            raise ProviderUnavailableError(f"Unexpected reply from {self.base_url}: not a JSON object")
        return reply

    def is_available(self) -> bool:
        try:
            return self._request("GET", "/health").get("status") == "ok"
        except ProviderUnavailableError:
            return False

    def send(self, message: dict, on_result: ResultCallback) -> dict:
        ack = self._request("POST", "/request", message, origin=message.get("origin"))
        if ack.get("status") == "pending" and ack.get("request_id"):
            thread = threading.Thread(
                target=self._poll,
                args=(ack["request_id"], on_result),
                daemon=True,
            )
            thread.start()
        return ack

    def _poll(self, request_id: str, on_result: ResultCallback) -> None:
        failures = 0
        while True:
            time.sleep(self.poll_interval)
            try:
                status = self._request("GET", f"/request/status/{request_id}")
            except ProviderUnavailableError as e:
                status = {"status": "error", "code": ProviderUnavailableError.code, "error": e.message}

            state = status.get("status")
            if state == "done" and isinstance(status.get("result"), dict):
                on_result(status["result"])
                return
            if state == "pending":
                failures = 0
                continue

            failures += 1
            logger.debug(f"Poll for {request_id} failed ({failures}): {status.get('error')}")
            if failures >= self.max_poll_failures:
                on_result({
                    "request_id": request_id,
                    "approved": False,
                    "code": status.get("code") or ProviderUnavailableError.code,
                    "error": status.get("error") or "Lost contact with the wallet",
                })
                return
