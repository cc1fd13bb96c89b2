"""
Background Service - Long-lived coordinator between pages and surfaces.

Flow:
1. Page sends a request message (through the bridge listener or in-process)
2. Service validates it, writes it to the request registry, opens a surface
3. The surface's controller sends a result message back here
4. Service clears the registry entry and forwards the result to the page

A surface that closes, or sits idle past the inactivity timeout, without a
decision abandons its request. The page then gets a synthetic rejection.
Every request reaches its page exactly once, whichever of these happens
first.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from models import (
    SharedStore,
    PendingRequest,
    WalletRelayError,
    ValidationError,
    NotConnectedError,
    ProviderUnavailableError,
    AuthError,
    RequestRejected,
    TAG_CONNECTION,
    TAG_CONTRACT,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_ABANDONED,
)
from models.store import KEY_CONNECTED_ORIGINS
from wallet import WalletAccessManager, sign_message
from .messages import (
    PAGE_REQUEST_TAGS,
    RESULT_TAGS,
    TRANSFER_REQUEST,
    BALANCE_REQUEST,
    SIGN_MESSAGE_REQUEST,
    NETWORK_REQUEST,
    DISCONNECT_REQUEST,
    transfer_payload,
    abandoned_result,
)
from .registry import RequestRegistry
from .surfaces import SurfacePolicy

logger = logging.getLogger(__name__)

# Delivered outcomes kept for status polling
OUTCOME_CACHE_MAX_SIZE = 1000
OUTCOME_CACHE_PRUNE_COUNT = 100

DEFAULT_INACTIVITY_TIMEOUT_SECONDS = 300

CLOSED_REASON = "Surface closed without a decision"


def _ok(result: Any) -> dict:
    return {"status": "ok", "result": result}


class BackgroundService(QObject):
    """
    Routes page messages and surface results.

    Page replies are delivered through the callable given to
    handle_page_message() and are also kept for get_request_status().
    """

    activity = pyqtSignal(str, bool)  # message, is_error
    request_pending = pyqtSignal(object)  # PendingRequest
    request_resolved = pyqtSignal(str, str)  # request_id, outcome

    def __init__(
        self,
        store: SharedStore,
        access: WalletAccessManager,
        registry: RequestRegistry,
        policy: SurfacePolicy,
        chain=None,
        inactivity_timeout: int = DEFAULT_INACTIVITY_TIMEOUT_SECONDS,
    ):
        """
        Args:
            chain: ChainClient for balance and network queries (optional)
            inactivity_timeout: Seconds before an undecided request is abandoned (0 = never)
        """
        super().__init__()
        self.store = store
        self.access = access
        self.registry = registry
        self.policy = policy
        self.chain = chain
        self.inactivity_timeout = inactivity_timeout
        self._lock = threading.Lock()
        # request_id -> page reply callable
        self._listeners: dict[str, Callable[[dict], None]] = {}
        # surface_id -> request_id the surface was opened for
        self._surfaces: dict[str, str] = {}
        # request_id -> result message delivered to the page
        self._outcomes: OrderedDict[str, dict] = OrderedDict()

    # ============================================
    # Connected origins
    # ============================================

    def connected_origins(self) -> dict[str, str]:
        """origin -> address exposed to it."""
        origins = self.store.get(KEY_CONNECTED_ORIGINS)
        if not isinstance(origins, dict):
            return {}
        return origins

    def is_connected(self, origin: Optional[str]) -> bool:
        return bool(origin) and origin in self.connected_origins()

    def _record_connection(self, origin: str, address: str) -> None:
        origins = self.connected_origins()
        origins[origin] = address
        self.store.set(KEY_CONNECTED_ORIGINS, origins)

    def disconnect_origin(self, origin: str) -> bool:
        origins = self.connected_origins()
        if origins.pop(origin, None) is None:
            return False
        self.store.set(KEY_CONNECTED_ORIGINS, origins)
        self.activity.emit(f"Disconnected {origin}", False)
        return True

    def _require_connected(self, message: dict) -> str:
        origin = message.get("origin")
        if not origin:
            raise ValidationError("Missing required field(s): origin")
        if not self.is_connected(origin):
            raise NotConnectedError(f"{origin} is not connected. Please connect first.")
        return origin

    # ============================================
    # Page messages
    # ============================================

    def handle_page_message(self, message: dict,
                            reply: Optional[Callable[[dict], None]] = None) -> dict:
        """
        Handle one message from a page.

        Returns an immediate ack: pending (with request_id), ok (with result)
        or error (with code). For pending requests the final result goes to
        reply() once the user decides or the request is abandoned.
        """
        if not isinstance(message, dict):
            return ValidationError("Message must be an object").to_dict()
        message_type = message.get("type")
        try:
            if message_type in PAGE_REQUEST_TAGS:
                return self._submit(message_type, message, reply)
            if message_type == BALANCE_REQUEST:
                return _ok(self._get_balance(message))
            if message_type == SIGN_MESSAGE_REQUEST:
                return _ok(self._sign_message(message))
            if message_type == NETWORK_REQUEST:
                return _ok(self._network_info())
            if message_type == DISCONNECT_REQUEST:
                return _ok(self.disconnect_origin(message.get("origin") or ""))
            raise ValidationError(f"Unknown message type: {message_type}")
        except WalletRelayError as e:
            logger.info(f"Rejected {message_type} from {message.get('origin')}: {e.message}")
            self.activity.emit(f"{message_type} from {message.get('origin')} rejected: {e.message}", True)
            return e.to_dict()

    def _submit(self, message_type: str, message: dict,
                reply: Optional[Callable[[dict], None]]) -> dict:
        tag = PAGE_REQUEST_TAGS[message_type]
        if tag == TAG_CONTRACT:
            self._require_connected(message)
        payload = transfer_payload(message) if message_type == TRANSFER_REQUEST else message

        request_id = self.registry.submit(tag, payload)
        request = self.registry.find(request_id)
        if reply is not None:
            with self._lock:
                self._listeners[request_id] = reply

        try:
            surface_id = self.policy.open_surface(request.surface_kind, request_id)
        except WalletRelayError:
            self.registry.resolve(request_id, STATUS_REJECTED)
            with self._lock:
                self._listeners.pop(request_id, None)
            raise
        with self._lock:
            self._surfaces[surface_id] = request_id

        self.activity.emit(f"{tag.capitalize()} request from {request.origin} - awaiting approval", False)
        self.request_pending.emit(request)
        return {"status": "pending", "request_id": request_id}

    def _get_balance(self, message: dict) -> str:
        origin = self._require_connected(message)
        if self.chain is None:
            raise ProviderUnavailableError("No network configured")
        address = message.get("address") or self.connected_origins()[origin]
        return self.chain.get_balance(address)

    def _sign_message(self, message: dict) -> dict:
        origin = self._require_connected(message)
        text = message.get("message")
        if not text:
            raise ValidationError("Missing required field(s): message")
        snapshot = self.store.snapshot()
        if self.access.should_gate(snapshot):
            raise AuthError("Wallet is locked")
        address = self.connected_origins()[origin]
        for wallet in self.access.get_wallets(snapshot):
            if wallet.address.lower() == address.lower():
                return {"signature": sign_message(wallet, text)}
        raise NotConnectedError(f"Wallet {address} connected to {origin} is not loaded")

    def _network_info(self) -> dict:
        if self.chain is None:
            raise ProviderUnavailableError("No network configured")
        return self.chain.network_info()

    # ============================================
    # Surface messages
    # ============================================

    def handle_surface_message(self, message: dict) -> bool:
        """
        Accept a CONNECTION_RESULT or CONTRACT_RESULT from a surface.

        Returns True if the result was delivered, False if the request was
        already resolved (late or duplicate message).
        """
        tag = RESULT_TAGS.get(message.get("type"))
        if tag is None:
            raise ValidationError(f"Unknown result type: {message.get('type')}")
        request_id = message.get("request_id")
        request = self.registry.find(request_id) if request_id else None
        if request is None or request.tag != tag:
            logger.info(f"Result for request {request_id} arrived after it was resolved, ignoring")
            return False

        approved = bool(message.get("approved"))
        outcome = STATUS_APPROVED if approved else STATUS_REJECTED
        if not self.registry.resolve(request_id, outcome):
            return False
        if tag == TAG_CONNECTION and approved and message.get("address"):
            self._record_connection(request.origin, message["address"])
        return self._deliver(request, message, outcome)

    def surface_closed(self, surface_id: str) -> bool:
        """Host close event. Abandons the request the surface was opened for."""
        with self._lock:
            request_id = self._surfaces.pop(surface_id, None)
        if request_id is None:
            return False
        return self.abandon(request_id, CLOSED_REASON)

    def abandon(self, request_id: str, reason: str) -> bool:
        """Pending -> Abandoned with a synthetic rejection. No-op if already resolved."""
        request = self.registry.find(request_id)
        if request is None:
            return False
        if not self.registry.resolve(request_id, STATUS_ABANDONED):
            return False
        return self._deliver(request, abandoned_result(request, reason), STATUS_ABANDONED)

    def sweep_expired(self, now: Optional[float] = None) -> list[str]:
        """Abandon requests older than the inactivity timeout. Returns their ids."""
        if self.inactivity_timeout <= 0:
            return []
        now = time.time() if now is None else now
        expired = []
        for request in self.registry.pending():
            if now - request.created_at >= self.inactivity_timeout:
                reason = f"No decision within {self.inactivity_timeout}s"
                if self.abandon(request.id, reason):
                    expired.append(request.id)
        return expired

    # ============================================
    # Delivery
    # ============================================

    def _deliver(self, request: PendingRequest, message: dict, outcome: str) -> bool:
        result = dict(message)
        if not result.get("approved"):
            result.setdefault("code", RequestRejected.code)
            result.setdefault("error", "User rejected the request")

        with self._lock:
            if request.id in self._outcomes:
                return False
            self._outcomes[request.id] = result
            if len(self._outcomes) > OUTCOME_CACHE_MAX_SIZE:
                for _ in range(OUTCOME_CACHE_PRUNE_COUNT):
                    self._outcomes.popitem(last=False)
            listener = self._listeners.pop(request.id, None)
            for surface_id in [s for s, r in self._surfaces.items() if r == request.id]:
                del self._surfaces[surface_id]

        self.activity.emit(f"{request.tag.capitalize()} request from {request.origin}: {outcome}",
                           outcome == STATUS_ABANDONED)
        self.request_resolved.emit(request.id, outcome)
        if listener is not None:
            try:
                listener(result)
            except Exception:
                logger.exception(f"Page listener for request {request.id} failed")
        return True

    def get_request_status(self, request_id: str) -> dict:
        """Polling view of a request: pending, done (with result) or not found."""
        # Registry is cleared just before the outcome is recorded; check both sides of that
        for attempt in range(2):
            with self._lock:
                result = self._outcomes.get(request_id)
            if result is not None:
                return {"status": "done", "request_id": request_id, "result": result}
            if attempt == 0 and self.registry.find(request_id) is not None:
                return {"status": "pending", "request_id": request_id}
        return {"status": "error", "error": "Request not found", "code": "REQUEST_NOT_FOUND"}

    def pending_surfaces(self) -> dict[str, str]:
        with self._lock:
            return dict(self._surfaces)
