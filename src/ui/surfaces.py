"""
Surfaces - Popup and tab windows over the shared lifecycle controller.

Both windows build the same RequestLifecycleController and the same
screens. They differ only in size, title and whether they offer the
expanded view. SurfaceHost is the window-creation primitive the surface
policy calls; it may be called from the bridge listener's threads, so
window creation is marshalled onto the Qt main thread.
"""

import logging
import uuid
from typing import Optional, TYPE_CHECKING

from PyQt6.QtWidgets import QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QStackedWidget
from PyQt6.QtCore import Qt, QObject, QThread, pyqtSignal

from models import SharedStore, WalletRelayError, TAG_CONTRACT
from services.controller import (
    RequestLifecycleController,
    SurfaceContext,
    ScreenState,
    SCREEN_CONNECTION_APPROVAL,
    SCREEN_CONTRACT_APPROVAL,
    SCREEN_UNLOCK,
    SCREEN_WELCOME,
    SCREEN_DASHBOARD,
)
from services.registry import RequestRegistry
from services.surfaces import SurfaceSpec, SURFACE_POPUP, SURFACE_TAB, SURFACE_SIZES
from wallet import WalletAccessManager, generate_wallet, import_mnemonic, import_private_key
from .screens import (
    UnlockScreen,
    WelcomeScreen,
    DashboardScreen,
    ConnectionApprovalScreen,
    ContractApprovalScreen,
)
from .theme import Theme, show_info

if TYPE_CHECKING:
    from services.background import BackgroundService

logger = logging.getLogger(__name__)


# ============================================
# Execution Thread
# ============================================

class ExecutionThread(QThread):
    """Background thread for running an approved contract request."""

    completed = pyqtSignal(object, object)  # result, error

    def __init__(self, job):
        super().__init__()
        self.job = job

    def run(self):
        try:
            result = self.job()
        except Exception as e:
            logger.warning(f"Contract execution error: {e}")
            self.completed.emit(None, e)
            return
        self.completed.emit(result, None)


class SurfaceWindow(QWidget):
    """Base window: a screen stack driven by the controller."""

    _state_changed = pyqtSignal(object)  # ScreenState - marshals store events to this thread

    window_title = "Wallet Relay"
    show_expand = False

    def __init__(self, host: "SurfaceHost", surface_id: str, spec: SurfaceSpec):
        super().__init__()
        self.host = host
        self.surface_id = surface_id
        self.spec = spec
        self.setWindowTitle(self.window_title)
        self.setAttribute(Qt.WidgetAttribute.WA_DeleteOnClose)

        context = SurfaceContext(
            surface_id=surface_id,
            surface_type=spec.surface_type,
            request_id=spec.request_id,
            close=self.close,
        )
        self.controller = RequestLifecycleController(
            host.store,
            host.access,
            host.registry,
            host.send_result,
            context,
            executor=host.executor,
            on_change=self._state_changed.emit,
            runner=host.run_in_thread,
        )
        self._state_changed.connect(self.render)

        layout = QVBoxLayout(self)

        # Dismissible notice bar
        self.notice_bar = QWidget()
        notice_layout = QHBoxLayout(self.notice_bar)
        notice_layout.setContentsMargins(0, 0, 0, 0)
        self.notice_label = QLabel("")
        self.notice_label.setWordWrap(True)
        self.notice_label.setStyleSheet(f"color: {Theme.RUST};")
        notice_layout.addWidget(self.notice_label, 1)
        dismiss_btn = QPushButton("Dismiss")
        dismiss_btn.clicked.connect(lambda: self.render(self.controller.dismiss_notice()))
        notice_layout.addWidget(dismiss_btn)
        layout.addWidget(self.notice_bar)

        self.stack = QStackedWidget()
        layout.addWidget(self.stack)

        self.unlock_screen = UnlockScreen()
        self.welcome_screen = WelcomeScreen()
        self.dashboard_screen = DashboardScreen(show_expand=self.show_expand)
        self.connection_screen = ConnectionApprovalScreen()
        self.contract_screen = ContractApprovalScreen()
        self.screens = {
            SCREEN_UNLOCK: self.unlock_screen,
            SCREEN_WELCOME: self.welcome_screen,
            SCREEN_DASHBOARD: self.dashboard_screen,
            SCREEN_CONNECTION_APPROVAL: self.connection_screen,
            SCREEN_CONTRACT_APPROVAL: self.contract_screen,
        }
        for screen in self.screens.values():
            self.stack.addWidget(screen)

        for panel in (self.unlock_screen.unlock_panel,
                      self.connection_screen.unlock_panel,
                      self.contract_screen.unlock_panel):
            panel.unlock_requested.connect(self.on_unlock)
        for screen in (self.connection_screen, self.contract_screen):
            screen.approve_requested.connect(self.on_approve)
            screen.reject_requested.connect(self.on_reject)
        self.welcome_screen.create_requested.connect(self.on_create_wallet)
        self.welcome_screen.import_requested.connect(self.on_import_wallet)
        self.dashboard_screen.wallet_selected.connect(
            lambda address: self.render(self.controller.switch_wallet(address)))
        self.dashboard_screen.lock_requested.connect(lambda: self.render(self.controller.lock()))
        self.dashboard_screen.expand_requested.connect(self.host.open_expanded_view)

        self._closing = False
        self.render(self.controller.mount())

    def render(self, state: ScreenState):
        if self._closing:
            return
        screen = self.screens[state.screen]
        if state.screen == SCREEN_WELCOME:
            screen.render(state, is_setup=self.host.access.is_setup())
        else:
            screen.render(state)
        self.stack.setCurrentWidget(screen)
        self.notice_label.setText(state.notice or "")
        self.notice_bar.setVisible(bool(state.notice))

    # ============================================
    # User actions
    # ============================================

    def _run(self, action, *args):
        """Run a controller action; errors become the notice."""
        try:
            state = action(*args)
        except WalletRelayError as e:
            state = self.controller.notify(e.message)
        if not self._closing:
            self.render(state)

    def on_unlock(self, password: str):
        self._run(self.controller.unlock, password)

    def on_approve(self, request_id: str, address: str):
        state = self.controller.state
        if state.request is not None and state.request.tag == TAG_CONTRACT:
            switching = address and state.active_wallet and address != state.active_wallet.address
            if switching and state.request.id == request_id:
                self.controller.switch_wallet(address)
            self._run(self.controller.approve, request_id)
        else:
            self._run(self.controller.approve, request_id, address or None)

    def on_reject(self, request_id: str):
        self._run(self.controller.reject, request_id)

    def on_create_wallet(self, password: str, name: str):
        access = self.host.access
        try:
            if not access.is_setup():
                access.setup_password(password)
            wallet = generate_wallet(name)
            access.add_wallet(wallet, password)
        except ValueError as e:
            self.render(self.controller.notify(str(e)))
            return
        except WalletRelayError as e:
            self.render(self.controller.notify(e.message))
            return
        show_info(self, "Back up your recovery phrase",
                  f"Write these words down and keep them safe:\n\n{wallet.mnemonic}")
        self.render(self.controller.refresh())

    def on_import_wallet(self, password: str, secret: str):
        access = self.host.access
        try:
            if len(secret.split()) > 1:
                wallet = import_mnemonic(secret)
            else:
                wallet = import_private_key(secret)
            if not access.is_setup():
                access.setup_password(password)
            access.add_wallet(wallet, password)
        except ValueError as e:
            self.render(self.controller.notify(f"Import failed: {e}"))
            return
        except WalletRelayError as e:
            self.render(self.controller.notify(e.message))
            return
        self.render(self.controller.refresh())

    def closeEvent(self, event):
        """Host close event: unbind and report it (abandons an undecided request)."""
        self._closing = True
        self.controller.unmount()
        self.host.surface_closed(self.surface_id)
        event.accept()


class PopupSurface(SurfaceWindow):
    """Fixed-size window anchored to the tray entry point."""
    window_title = "Wallet Relay"
    show_expand = True

    def __init__(self, host: "SurfaceHost", surface_id: str, spec: SurfaceSpec):
        super().__init__(host, surface_id, spec)
        self.setFixedSize(spec.width, spec.height)
        self.setWindowFlag(Qt.WindowType.WindowStaysOnTopHint)


class TabSurface(SurfaceWindow):
    """Resizable expanded view."""
    window_title = "Wallet Relay - Expanded View"

    def __init__(self, host: "SurfaceHost", surface_id: str, spec: SurfaceSpec):
        super().__init__(host, surface_id, spec)
        self.resize(spec.width, spec.height)
        self.setMinimumSize(*SURFACE_SIZES[SURFACE_POPUP])


SURFACE_CLASSES = {
    SURFACE_POPUP: PopupSurface,
    SURFACE_TAB: TabSurface,
}


class SurfaceHost(QObject):
    """Creates and tracks surface windows."""

    _open_requested = pyqtSignal(object, str)  # SurfaceSpec, surface_id - internal, main thread

    def __init__(
        self,
        store: SharedStore,
        access: WalletAccessManager,
        registry: RequestRegistry,
        executor=None,
    ):
        super().__init__()
        self.store = store
        self.access = access
        self.registry = registry
        self.executor = executor
        self.background: Optional["BackgroundService"] = None
        self.policy = None
        self._windows: dict[str, SurfaceWindow] = {}
        self._threads: list[ExecutionThread] = []
        self._open_requested.connect(self._create_window, Qt.ConnectionType.QueuedConnection)

    def bind(self, background: "BackgroundService", policy) -> None:
        self.background = background
        self.policy = policy

    def open_window(self, spec: SurfaceSpec) -> str:
        """Window-creation primitive for the surface policy. Safe from any thread."""
        surface_id = str(uuid.uuid4())
        self._open_requested.emit(spec, surface_id)
        return surface_id

    def _create_window(self, spec: SurfaceSpec, surface_id: str) -> None:
        window = SURFACE_CLASSES[spec.surface_type](self, surface_id, spec)
        self._windows[surface_id] = window
        window.show()
        window.activateWindow()
        window.raise_()

    def open_popup(self) -> str:
        """Tray click: a popup that is not bound to any request."""
        width, height = SURFACE_SIZES[SURFACE_POPUP]
        return self.open_window(SurfaceSpec(SURFACE_POPUP, width, height))

    def open_expanded_view(self) -> str:
        return self.policy.open_expanded_view()

    def run_in_thread(self, job, on_done) -> None:
        """Controller job runner: the job runs off the GUI thread, on_done back on it."""
        # Threads outlive their windows, so the host keeps them until they finish
        self._threads = [t for t in self._threads if not t.isFinished()]
        thread = ExecutionThread(job)
        thread.completed.connect(lambda result, error: on_done(result, error))
        self._threads.append(thread)
        thread.start()

    def send_result(self, message: dict) -> None:
        self.background.handle_surface_message(message)

    def surface_closed(self, surface_id: str) -> None:
        self._windows.pop(surface_id, None)
        if self.background is not None:
            self.background.surface_closed(surface_id)

    def close_all(self) -> None:
        for window in list(self._windows.values()):
            window.close()
        for thread in self._threads:
            thread.wait()
