"""
Bridge - The SDK surface a page uses to talk to the wallet.

Every call returns a concurrent.futures.Future. Preconditions (connected,
required fields) are checked locally so bad calls fail without a round
trip. A future is completed exactly once; late or duplicate results are
dropped.
"""

import logging
import threading
import uuid
from concurrent.futures import Future
from typing import Any, Callable, Optional

from models import (
    WalletRelayError,
    ValidationError,
    NotConnectedError,
    ProviderUnavailableError,
    RequestRejected,
    CONTRACT_VIEW,
    CONTRACT_CALL,
    error_from_code,
)
from services.messages import (
    CONNECT_REQUEST,
    CONTRACT_REQUEST,
    TRANSFER_REQUEST,
    BALANCE_REQUEST,
    SIGN_MESSAGE_REQUEST,
    NETWORK_REQUEST,
    DISCONNECT_REQUEST,
)
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS = ["view_address"]
DEFAULT_GAS_LIMIT = 100_000

# Returned by get_network() when the wallet cannot answer
FALLBACK_NETWORK = {
    "chainId": hex(84532),
    "networkId": "base-sepolia",
    "name": "Base Sepolia",
}

EVENT_CONNECT = "connect"
EVENT_DISCONNECT = "disconnect"
EVENT_ACCOUNTS_CHANGED = "accountsChanged"
EVENTS = (EVENT_CONNECT, EVENT_DISCONNECT, EVENT_ACCOUNTS_CHANGED)

# Maps a final result message to the value the caller's future resolves to
Shape = Callable[[dict], Any]


def _failed(error: WalletRelayError) -> Future:
    future: Future = Future()
    future.set_exception(error)
    return future


def _done(value: Any) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


def _tx_hash(message: dict) -> Optional[str]:
    result = message.get("result") or {}
    if isinstance(result, dict):
        return result.get("txHash") or result.get("hash")
    return None


class Bridge:
    """Page-side client for the wallet."""

    def __init__(self, transport: Transport, origin: str, app_name: Optional[str] = None):
        """
        Args:
            transport: LocalTransport or HttpTransport
            origin: Identifies this page to the wallet
            app_name: Shown on the connection approval screen (defaults to origin)
        """
        self.transport = transport
        self.origin = origin
        self.app_name = app_name or origin
        self.connected_address: Optional[str] = None
        self._lock = threading.Lock()
        # correlation id -> (future, shape)
        self._pending: dict[str, tuple[Future, Shape]] = {}
        self._listeners: dict[str, list[Callable]] = {event: [] for event in EVENTS}

    @property
    def is_connected(self) -> bool:
        return self.connected_address is not None

    def is_available(self) -> bool:
        return self.transport.is_available()

    def get_wallet_info(self) -> dict:
        return {
            "isConnected": self.is_connected,
            "address": self.connected_address,
            "isAvailable": self.is_available(),
        }

    # ============================================
    # Events
    # ============================================

    def on(self, event: str, callback: Callable) -> None:
        if event not in self._listeners:
            raise ValidationError(f"Unknown event: {event}")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Callable) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, *args) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                logger.exception(f"{event} listener failed")

    # ============================================
    # Request plumbing
    # ============================================

    def _send(self, message: dict, shape: Shape) -> Future:
        """Send one message and return the future for its outcome."""
        future: Future = Future()
        correlation_id = str(uuid.uuid4())
        with self._lock:
            self._pending[correlation_id] = (future, shape)

        message = {**message, "origin": self.origin}
        try:
            ack = self.transport.send(message, lambda result: self._complete(correlation_id, result))
        except WalletRelayError as e:
            self._fail(correlation_id, e)
            return future

        status = ack.get("status")
        if status == "ok":
            self._resolve(correlation_id, ack.get("result"))
        elif status != "pending":
            self._fail(correlation_id, error_from_code(ack.get("code"), ack.get("error", "")))
        return future

    def _take(self, correlation_id: str) -> Optional[tuple[Future, Shape]]:
        with self._lock:
            return self._pending.pop(correlation_id, None)

    def _resolve(self, correlation_id: str, value: Any) -> None:
        entry = self._take(correlation_id)
        if entry is not None:
            entry[0].set_result(value)

    def _fail(self, correlation_id: str, error: WalletRelayError) -> None:
        entry = self._take(correlation_id)
        if entry is not None:
            entry[0].set_exception(error)

    def _complete(self, correlation_id: str, message: dict) -> None:
        """Final result from the background; only the first one counts."""
        entry = self._take(correlation_id)
        if entry is None:
            logger.debug(f"Dropping duplicate result for {correlation_id}")
            return
        future, shape = entry
        if not message.get("approved"):
            code = message.get("code") or RequestRejected.code
            future.set_exception(error_from_code(code, message.get("error") or "User rejected the request"))
            return
        try:
            future.set_result(shape(message))
        except WalletRelayError as e:
            future.set_exception(e)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    # ============================================
    # SDK calls
    # ============================================

    def connect(self, app_name: Optional[str] = None, app_icon: Optional[str] = None,
                permissions: Optional[list[str]] = None) -> Future:
        """Ask the user to expose an address. Resolves to {success, address, appName}."""
        if not self.is_available():
            return _failed(ProviderUnavailableError("Wallet is not installed or not available"))
        app_name = app_name or self.app_name

        def shape(message: dict) -> dict:
            address = message.get("address")
            if not address:
                raise ValidationError("Connection approved without an address")
            changed = address != self.connected_address
            self.connected_address = address
            self._emit(EVENT_CONNECT, {"address": address})
            if changed:
                self._emit(EVENT_ACCOUNTS_CHANGED, [address])
            return {"success": True, "address": address, "appName": app_name}

        return self._send({
            "type": CONNECT_REQUEST,
            "appName": app_name,
            "appIcon": app_icon,
            "permissions": permissions or list(DEFAULT_PERMISSIONS),
        }, shape)

    def _contract_message(self, contract_address: str, method_name: str, kind: str,
                          params: Optional[list], description: Optional[str], **extra) -> dict:
        if not contract_address or not method_name:
            raise ValidationError("contractAddress and methodName are required")
        message = {
            "type": CONTRACT_REQUEST,
            "contractAddress": contract_address,
            "methodName": method_name,
            "kind": kind,
            "params": list(params or []),
            "description": description,
        }
        message.update({k: v for k, v in extra.items() if v is not None})
        return message

    def view_call(self, contract_address: str, method_name: str,
                  params: Optional[list] = None, description: Optional[str] = None) -> Future:
        """Read-only contract call. Resolves to {success, result, type: "view"}."""
        if not self.is_connected:
            return _failed(NotConnectedError("Not connected to wallet. Please connect first."))
        try:
            message = self._contract_message(contract_address, method_name, CONTRACT_VIEW,
                                             params, description)
        except ValidationError as e:
            return _failed(e)
        return self._send(message, lambda m: {"success": True, "result": m.get("result"), "type": "view"})

    def call_contract(self, contract_address: str, method_name: str,
                      params: Optional[list] = None, value: str = "0",
                      gas_limit: int = DEFAULT_GAS_LIMIT, gas_price: Optional[float] = None,
                      description: Optional[str] = None) -> Future:
        """State-changing contract call. Resolves to {success, txHash, type: "call"}."""
        if not self.is_connected:
            return _failed(NotConnectedError("Not connected to wallet. Please connect first."))
        try:
            message = self._contract_message(contract_address, method_name, CONTRACT_CALL,
                                             params, description, value=value,
                                             gasLimit=gas_limit, gasPrice=gas_price)
        except ValidationError as e:
            return _failed(e)
        return self._send(message, lambda m: {"success": True, "txHash": _tx_hash(m), "type": "call"})

    def send_transaction(self, to: str, amount: str, message: Optional[str] = None) -> Future:
        """Native transfer. Resolves to {success, txHash}."""
        if not self.is_connected:
            return _failed(NotConnectedError("Not connected to wallet. Please connect first."))
        if not to or not amount:
            return _failed(ValidationError("to and amount are required"))
        return self._send({
            "type": TRANSFER_REQUEST,
            "to": to,
            "amount": str(amount),
            "message": message,
        }, lambda m: {"success": True, "txHash": _tx_hash(m)})

    def get_balance(self, address: Optional[str] = None) -> Future:
        """Native balance as a decimal string."""
        if not self.is_connected:
            return _failed(NotConnectedError("Not connected to wallet. Please connect first."))
        return self._send({
            "type": BALANCE_REQUEST,
            "address": address or self.connected_address,
        }, lambda m: m.get("result"))

    def sign_message(self, message: str) -> Future:
        """Resolves to the 0x-prefixed signature."""
        if not self.is_connected:
            return _failed(NotConnectedError("Not connected to wallet. Please connect first."))
        if not message:
            return _failed(ValidationError("message is required"))
        outer: Future = Future()
        inner = self._send({"type": SIGN_MESSAGE_REQUEST, "message": message}, lambda m: m.get("result"))

        def unwrap(f: Future) -> None:
            error = f.exception()
            if error is not None:
                outer.set_exception(error)
                return
            result = f.result()
            outer.set_result(result.get("signature") if isinstance(result, dict) else result)

        inner.add_done_callback(unwrap)
        return outer

    def get_network(self) -> Future:
        """Network info; falls back to the default network if the wallet cannot answer."""
        outer: Future = Future()
        if not self.is_available():
            outer.set_result(dict(FALLBACK_NETWORK))
            return outer
        inner = self._send({"type": NETWORK_REQUEST}, lambda m: m.get("result"))

        def fallback(f: Future) -> None:
            error = f.exception()
            if error is not None:
                logger.warning(f"Failed to get network info: {error}")
                outer.set_result(dict(FALLBACK_NETWORK))
            else:
                outer.set_result(f.result())

        inner.add_done_callback(fallback)
        return outer

    def disconnect(self) -> Future:
        """Forget the connection locally and tell the wallet. Always succeeds."""
        was_connected = self.is_connected
        if self.is_available():
            inner = self._send({"type": DISCONNECT_REQUEST}, lambda m: m.get("result"))
            error = inner.exception() if inner.done() else None
            if error is not None:
                logger.warning(f"Disconnect error: {error}")
        self.connected_address = None
        if was_connected:
            self._emit(EVENT_DISCONNECT)
            self._emit(EVENT_ACCOUNTS_CHANGED, [])
        return _done(None)
