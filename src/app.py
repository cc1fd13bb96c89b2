"""
Wallet Relay - Cross-context wallet request approval

A desktop wallet that lets untrusted pages ask for a connection, a contract
view call or a state-changing call, and asks the user before anything is
signed.

Entry point for the application.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from PyQt6.QtWidgets import QApplication, QMenu, QSystemTrayIcon, QStyle
from PyQt6.QtCore import QTimer

from models import Settings, SharedStore, PendingRequest, TAG_CONNECTION
from networks import ChainClient, NETWORKS, DEFAULT_NETWORK
from services import BackgroundService, BridgeServer, RequestRegistry, SurfacePolicy
from services.logging import configure_logging, cleanup_old_logs, ActivityLog
from ui import SurfaceHost, app_stylesheet, show_warning
from utils import get_settings_path, get_store_path
from wallet import KdfParams, WalletAccessManager

logger = logging.getLogger(__name__)


@dataclass
class Relay:
    """Every long-lived object of a running wallet."""
    settings: Settings
    store: SharedStore
    access: WalletAccessManager
    registry: RequestRegistry
    chain: ChainClient
    host: SurfaceHost
    policy: SurfacePolicy
    background: BackgroundService
    server: BridgeServer


def build_relay(settings: Settings, store_path: Path) -> Relay:
    """Wire the store, gate, registry, background and surfaces together."""
    store = SharedStore(store_path)
    kdf = KdfParams(
        time_cost=settings.kdf_time_cost,
        memory_cost=settings.kdf_memory_cost,
        parallelism=settings.kdf_parallelism,
    )
    access = WalletAccessManager(store, kdf)
    registry = RequestRegistry(store)

    network = NETWORKS.get(settings.chain_id)
    if network is None:
        logger.warning(f"Unknown chain id {settings.chain_id}, using {DEFAULT_NETWORK}")
        network = NETWORKS[DEFAULT_NETWORK]
    chain = ChainClient(network, settings.rpc_url or None)

    host = SurfaceHost(store, access, registry, executor=chain)
    policy = SurfacePolicy(host.open_window)
    background = BackgroundService(
        store, access, registry, policy,
        chain=chain,
        inactivity_timeout=settings.inactivity_timeout_seconds,
    )
    host.bind(background, policy)
    server = BridgeServer(background)
    return Relay(settings, store, access, registry, chain, host, policy, background, server)


class RelayTray(QSystemTrayIcon):
    """Tray icon: the entry point the popup is anchored to."""

    def __init__(self, app: QApplication, toast_enabled: bool = True):
        super().__init__(app)
        self.toast_enabled = toast_enabled
        self.setIcon(app.style().standardIcon(QStyle.StandardPixmap.SP_ComputerIcon))
        self.setToolTip("Wallet Relay")

    def on_request_pending(self, request: PendingRequest):
        """Toast for a request that needs a decision (runs on the main thread)."""
        if not self.toast_enabled or not self.isVisible():
            return
        if request.tag == TAG_CONNECTION:
            text = f"{request.app_name} wants to connect"
        elif request.is_transfer:
            text = f"{request.origin} wants to send {request.value}"
        else:
            text = f"{request.origin} wants to call {request.method_name}"
        self.showMessage("Approval Required", text, QSystemTrayIcon.MessageIcon.Information, 5000)


def setup_tray(app: QApplication, relay: Relay) -> RelayTray:
    tray = RelayTray(app, relay.settings.toast_enabled)
    relay.background.request_pending.connect(tray.on_request_pending)

    tray_menu = QMenu()
    open_action = tray_menu.addAction("Open Wallet")
    open_action.triggered.connect(relay.host.open_popup)
    expand_action = tray_menu.addAction("Expanded View")
    expand_action.triggered.connect(relay.host.open_expanded_view)
    tray_menu.addSeparator()
    lock_action = tray_menu.addAction("Lock")
    lock_action.triggered.connect(relay.access.lock)
    tray_menu.addSeparator()
    quit_action = tray_menu.addAction("Quit")
    quit_action.triggered.connect(QApplication.quit)
    tray.setContextMenu(tray_menu)

    def on_activated(reason):
        if reason == QSystemTrayIcon.ActivationReason.Trigger:
            relay.host.open_popup()

    tray.activated.connect(on_activated)
    tray.show()
    return tray


def main():
    """Application entry point."""
    # Configure logging before anything else
    configure_logging()

    app = QApplication(sys.argv)
    app.setApplicationName("Wallet Relay")
    app.setOrganizationName("Wallet Relay")
    app.setQuitOnLastWindowClosed(False)
    app.setStyleSheet(app_stylesheet())

    settings = Settings.load(get_settings_path())
    relay = build_relay(settings, get_store_path())
    relay.store.watch()

    activity_log = ActivityLog(settings.log_retention_days)
    relay.background.activity.connect(activity_log.record)
    if settings.log_retention_days > 0:
        deleted = cleanup_old_logs(settings.log_retention_days)
        if deleted > 0:
            logger.info(f"Cleaned up {deleted} old log file(s)")

    if not relay.server.start(settings.server_port, settings.allow_lan):
        logger.error("Bridge listener did not start; pages cannot reach the wallet")
        show_warning(None, "Bridge Unavailable",
                     f"Could not listen on port {settings.server_port}. "
                     "Pages will not be able to reach the wallet until it is restarted.")

    # Inactivity expiry for surfaces that never report a close
    sweep_timer = QTimer()
    sweep_timer.timeout.connect(relay.background.sweep_expired)
    if settings.inactivity_timeout_seconds > 0:
        sweep_timer.start(settings.sweep_interval_seconds * 1000)

    # Keep a reference; the tray icon disappears if it is garbage collected
    tray = None
    if QSystemTrayIcon.isSystemTrayAvailable():
        tray = setup_tray(app, relay)
    else:
        relay.host.open_popup()

    def shutdown():
        sweep_timer.stop()
        relay.host.close_all()
        relay.server.stop()

    app.aboutToQuit.connect(shutdown)
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
