"""
Request Lifecycle Controller - The one screen state machine for every surface.

Popup and tab both construct this class the same way; each supplies only a
SurfaceContext describing its own window. The screen is re-derived from a
fresh store snapshot on every mount, refresh and decision, never from flags
carried over from an earlier render.

Screen resolution is an ordered table. The first resolver that answers wins:

1. Pending request (connection before contract) -> its approval screen,
   with the unlock step embedded when the gate is up
2. Gate up -> unlock
3. No active wallet -> welcome / onboarding
4. Otherwise -> dashboard

Decisions name the request the surface rendered. A decision naming any
other request is refused without sending anything.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from models import (
    SharedStore,
    PendingRequest,
    ContractRequest,
    AuthError,
    ValidationError,
    TAG_CONNECTION,
    TAG_CONTRACT,
    STATUS_APPROVED,
    STATUS_REJECTED,
)
from wallet import WalletAccessManager, UnlockedWallet
from .messages import connection_result, contract_result
from .registry import RequestRegistry

logger = logging.getLogger(__name__)

SCREEN_CONNECTION_APPROVAL = "connection_approval"
SCREEN_CONTRACT_APPROVAL = "contract_approval"
SCREEN_UNLOCK = "unlock"
SCREEN_WELCOME = "welcome"
SCREEN_DASHBOARD = "dashboard"

APPROVAL_SCREENS = {
    TAG_CONNECTION: SCREEN_CONNECTION_APPROVAL,
    TAG_CONTRACT: SCREEN_CONTRACT_APPROVAL,
}

DEFAULT_REJECT_REASON = "User rejected the request"
STALE_DECISION_NOTICE = "The request changed before your decision was applied. Please review it again."

# (result, error) - exactly one of them is set
JobCallback = Callable[[Any, Optional[Exception]], None]


class ContractExecutor(Protocol):
    """Runs an approved contract request with the selected wallet."""

    def execute(self, request: ContractRequest, wallet: Optional[UnlockedWallet]) -> Any:
        ...


def run_inline(job: Callable[[], Any], on_done: JobCallback) -> None:
    """Job runner that executes on the calling thread."""
    try:
        result = job()
    except Exception as e:
        on_done(None, e)
        return
    on_done(result, None)


@dataclass
class SurfaceContext:
    """Window-specific affordances a surface hands to the controller."""
    surface_id: str
    surface_type: str
    request_id: Optional[str] = None    # Set when the surface was opened for this request
    close: Callable[[], None] = lambda: None


@dataclass
class ScreenState:
    """Everything a surface needs to render."""
    screen: str
    request: Optional[PendingRequest] = None
    requires_unlock: bool = False
    wallets: list[UnlockedWallet] = field(default_factory=list)
    active_wallet: Optional[UnlockedWallet] = None
    notice: Optional[str] = None
    busy: bool = False      # An approved contract request is executing


@dataclass
class _Inputs:
    gated: bool
    pending: list[PendingRequest]
    wallets: list[UnlockedWallet]
    active_wallet: Optional[UnlockedWallet]


def _resolve_pending_request(inputs: _Inputs) -> Optional[ScreenState]:
    if not inputs.pending:
        return None
    request = inputs.pending[0]
    return ScreenState(
        screen=APPROVAL_SCREENS[request.tag],
        request=request,
        requires_unlock=inputs.gated,
    )


def _resolve_unlock(inputs: _Inputs) -> Optional[ScreenState]:
    if inputs.gated:
        return ScreenState(screen=SCREEN_UNLOCK)
    return None


def _resolve_welcome(inputs: _Inputs) -> Optional[ScreenState]:
    if inputs.active_wallet is None:
        return ScreenState(screen=SCREEN_WELCOME)
    return None


def _resolve_dashboard(inputs: _Inputs) -> Optional[ScreenState]:
    return ScreenState(screen=SCREEN_DASHBOARD)


SCREEN_RESOLVERS = (
    _resolve_pending_request,
    _resolve_unlock,
    _resolve_welcome,
    _resolve_dashboard,
)


class RequestLifecycleController:
    """Decides what a surface shows and relays the user's decision."""

    def __init__(
        self,
        store: SharedStore,
        access: WalletAccessManager,
        registry: RequestRegistry,
        send: Callable[[dict], Any],
        context: SurfaceContext,
        executor: Optional[ContractExecutor] = None,
        on_change: Optional[Callable[[ScreenState], None]] = None,
        runner: Callable[[Callable[[], Any], JobCallback], None] = run_inline,
    ):
        """
        Args:
            send: Delivers a result message to the background
            context: The hosting surface's adapter
            executor: Runs approved contract requests when no result is supplied
            on_change: Called with the new state whenever the store changes,
                and when an executor job settles
            runner: Runs executor jobs; the callback must arrive on the
                thread that owns this controller
        """
        self.store = store
        self.access = access
        self.registry = registry
        self.context = context
        self.executor = executor
        self._send = send
        self._on_change = on_change
        self._run_job = runner
        self._executing: Optional[str] = None
        self._notice: Optional[str] = None
        self._state: Optional[ScreenState] = None
        self._bound = False

    @property
    def state(self) -> ScreenState:
        if self._state is None:
            return self.refresh()
        return self._state

    # ============================================
    # Mount / refresh
    # ============================================

    def mount(self) -> ScreenState:
        """Bind to store change events and derive the first screen."""
        if not self._bound:
            self.store.changed.connect(self._on_store_changed)
            self._bound = True
        return self.refresh()

    def unmount(self) -> None:
        if self._bound:
            self.store.changed.disconnect(self._on_store_changed)
            self._bound = False

    def _on_store_changed(self, _key: str) -> None:
        state = self.refresh()
        if self._on_change:
            self._on_change(state)

    def refresh(self) -> ScreenState:
        """Re-derive the screen from one snapshot of the store."""
        snapshot = self.store.snapshot()
        gated = self.access.should_gate(snapshot)
        wallets = [] if gated else self.access.get_wallets(snapshot)
        active = None if gated else self.access.get_active_wallet(snapshot)
        inputs = _Inputs(
            gated=gated,
            pending=self.registry.pending(snapshot),
            wallets=wallets,
            active_wallet=active,
        )

        state = None
        for resolver in SCREEN_RESOLVERS:
            state = resolver(inputs)
            if state is not None:
                break
        state.wallets = wallets
        state.active_wallet = active
        state.notice = self._notice
        state.busy = self._executing is not None
        self._state = state
        return state

    # ============================================
    # Gate
    # ============================================

    def unlock(self, password: str) -> ScreenState:
        """Try the password; a failure leaves the gate up with a notice."""
        try:
            self.access.unlock(password)
        except AuthError as e:
            self._notice = e.message
            return self.refresh()
        self._notice = None
        return self.refresh()

    def lock(self) -> ScreenState:
        self.access.lock()
        return self.refresh()

    def switch_wallet(self, address: str) -> ScreenState:
        try:
            self.access.set_active_wallet(address)
        except ValueError as e:
            self._notice = str(e)
        return self.refresh()

    def notify(self, message: str) -> ScreenState:
        self._notice = message
        return self.refresh()

    def dismiss_notice(self) -> ScreenState:
        self._notice = None
        return self.refresh()

    # ============================================
    # Decisions
    # ============================================

    def _current_request(self, request_id: str) -> Optional[PendingRequest]:
        """
        The pending request on screen, if it is still the one the user decided on.

        A mismatch means the screen changed under the click: nothing is sent,
        the surface re-renders and a notice asks the user to look again.
        """
        state = self.refresh()
        if state.request is None:
            logger.info(f"Surface {self.context.surface_id}: no pending request, decision ignored")
            return None
        if state.request.id != request_id:
            logger.warning(
                f"Surface {self.context.surface_id}: decision for {request_id} "
                f"but {state.request.id} is pending, ignored"
            )
            self._notice = STALE_DECISION_NOTICE
            return None
        if self._executing == request_id:
            logger.info(f"Surface {self.context.surface_id}: {request_id} is already executing")
            return None
        return state.request

    def approve(self, request_id: str, address: Optional[str] = None, result: Any = None) -> ScreenState:
        """
        Approve the request on screen.

        Args:
            request_id: Id of the request the surface rendered
            address: Wallet to expose for a connection (defaults to the active one)
            result: Outcome of a contract request; executed via the executor if omitted
        """
        request = self._current_request(request_id)
        if request is None:
            return self.refresh()
        state = self.state
        if state.requires_unlock:
            raise AuthError("Unlock the wallet before approving")

        if request.tag == TAG_CONNECTION:
            address = address or (state.active_wallet.address if state.active_wallet else None)
            if not address:
                raise ValidationError("No wallet selected")
            return self._finish(request, connection_result(request, True, address), STATUS_APPROVED)

        if result is not None:
            return self._finish(request, contract_result(request, True, result=result), STATUS_APPROVED)
        if self.executor is None:
            raise ValidationError("No result supplied and no executor configured")

        executor = self.executor
        wallet = state.active_wallet
        self._executing = request.id
        self._run_job(
            lambda: executor.execute(request, wallet),
            lambda outcome, error: self._on_executed(request, outcome, error),
        )
        return self.refresh()

    def _on_executed(self, request: ContractRequest, outcome: Any,
                     error: Optional[Exception]) -> ScreenState:
        self._executing = None
        if self.registry.find(request.id) is None:
            # Settled elsewhere (window closed, inactivity sweep) while the call ran
            logger.warning(f"Contract request {request.id} settled during execution, outcome dropped")
            state = self.refresh()
        elif error is not None:
            logger.warning(f"Contract request {request.id} failed: {error}")
            self._notice = f"Contract call failed: {error}"
            state = self._finish(request, contract_result(request, False, error=str(error)), STATUS_REJECTED)
        else:
            state = self._finish(request, contract_result(request, True, result=outcome), STATUS_APPROVED)
        if self._bound and self._on_change:
            self._on_change(state)
        return state

    def reject(self, request_id: str, error: Optional[str] = None) -> ScreenState:
        """Reject the request on screen. Does not need the wallet unlocked."""
        request = self._current_request(request_id)
        if request is None:
            return self.refresh()
        if request.tag == TAG_CONTRACT:
            message = contract_result(request, False, error=error or DEFAULT_REJECT_REASON)
        else:
            message = connection_result(request, False)
        return self._finish(request, message, STATUS_REJECTED)

    def _finish(self, request: PendingRequest, message: dict, outcome: str) -> ScreenState:
        # Result first, then registry, then the window
        self._send(message)
        self.registry.resolve(request.id, outcome)
        if self.context.request_id == request.id:
            self.unmount()
            self.context.close()
        return self.refresh()
