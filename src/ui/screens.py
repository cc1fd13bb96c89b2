"""
Screens - One widget per controller screen.

Screens only render a ScreenState and emit what the user asked for; the
hosting surface forwards those to the shared controller.
"""

from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QLabel, QLineEdit, QPushButton,
    QComboBox, QFrame, QTextEdit,
)
from PyQt6.QtCore import pyqtSignal
from PyQt6.QtGui import QFont

from models import ContractRequest, ConnectionRequest
from networks import format_address
from services.controller import ScreenState
from .theme import Theme


def _title(text: str) -> QLabel:
    label = QLabel(text)
    label.setStyleSheet(f"color: {Theme.LIME}; font-size: 15px; font-weight: bold;")
    return label


def _muted(text: str = "") -> QLabel:
    label = QLabel(text)
    label.setWordWrap(True)
    label.setStyleSheet(f"color: {Theme.CHARCOAL};")
    return label


class UnlockPanel(QWidget):
    """Password entry; embedded in the approval screens and the unlock screen."""

    unlock_requested = pyqtSignal(str)

    def __init__(self, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(8)

        self.password_input = QLineEdit()
        self.password_input.setEchoMode(QLineEdit.EchoMode.Password)
        self.password_input.setPlaceholderText("Enter password")
        self.password_input.returnPressed.connect(self.on_unlock)
        layout.addWidget(self.password_input)

        self.error_label = QLabel("")
        self.error_label.setStyleSheet(f"color: {Theme.ERROR};")
        layout.addWidget(self.error_label)

        unlock_btn = QPushButton("Unlock")
        unlock_btn.setDefault(True)
        unlock_btn.clicked.connect(self.on_unlock)
        layout.addWidget(unlock_btn)

    def on_unlock(self):
        password = self.password_input.text()
        if not password:
            self.error_label.setText("Please enter your password")
            return
        self.password_input.clear()
        self.error_label.setText("")
        self.unlock_requested.emit(password)


class UnlockScreen(QWidget):
    def __init__(self, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.addWidget(_title("Wallet locked"))
        layout.addWidget(_muted("Enter your password to continue."))
        self.unlock_panel = UnlockPanel()
        layout.addWidget(self.unlock_panel)
        layout.addStretch()

    def render(self, state: ScreenState):
        self.unlock_panel.password_input.setFocus()


class WelcomeScreen(QWidget):
    """Onboarding: set a password and create or import the first wallet."""

    create_requested = pyqtSignal(str, str)  # password, name
    import_requested = pyqtSignal(str, str)  # password, seed phrase or private key

    def __init__(self, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setSpacing(10)
        layout.addWidget(_title("Welcome"))
        layout.addWidget(_muted("Create a new wallet or import an existing one."))

        self.name_input = QLineEdit()
        self.name_input.setPlaceholderText("Wallet name (optional)")
        layout.addWidget(self.name_input)

        self.password_input = QLineEdit()
        self.password_input.setEchoMode(QLineEdit.EchoMode.Password)
        self.password_input.setPlaceholderText("Password")
        layout.addWidget(self.password_input)

        self.confirm_input = QLineEdit()
        self.confirm_input.setEchoMode(QLineEdit.EchoMode.Password)
        self.confirm_input.setPlaceholderText("Confirm password")
        layout.addWidget(self.confirm_input)

        self.secret_input = QTextEdit()
        self.secret_input.setPlaceholderText("Seed phrase or private key (import only)")
        self.secret_input.setMaximumHeight(70)
        layout.addWidget(self.secret_input)

        self.error_label = QLabel("")
        self.error_label.setStyleSheet(f"color: {Theme.ERROR};")
        layout.addWidget(self.error_label)

        btn_layout = QHBoxLayout()
        import_btn = QPushButton("Import")
        import_btn.clicked.connect(self.on_import)
        btn_layout.addWidget(import_btn)
        create_btn = QPushButton("Create Wallet")
        create_btn.setDefault(True)
        create_btn.clicked.connect(self.on_create)
        btn_layout.addWidget(create_btn)
        layout.addLayout(btn_layout)
        layout.addStretch()

        self._needs_confirm = True

    def render(self, state: ScreenState, is_setup: bool = False):
        # Existing setup: the password only unlocks the key for encryption
        self._needs_confirm = not is_setup
        self.confirm_input.setVisible(not is_setup)

    def _password(self) -> str:
        password = self.password_input.text()
        if not password:
            self.error_label.setText("Please enter a password")
            return ""
        if self._needs_confirm and password != self.confirm_input.text():
            self.error_label.setText("Passwords do not match")
            return ""
        self.error_label.setText("")
        return password

    def _clear(self):
        self.password_input.clear()
        self.confirm_input.clear()
        self.secret_input.clear()

    def on_create(self):
        password = self._password()
        if password:
            name = self.name_input.text().strip()
            self._clear()
            self.create_requested.emit(password, name)

    def on_import(self):
        secret = self.secret_input.toPlainText().strip()
        if not secret:
            self.error_label.setText("Paste a seed phrase or private key to import")
            return
        password = self._password()
        if password:
            self._clear()
            self.import_requested.emit(password, secret)


class DashboardScreen(QWidget):
    wallet_selected = pyqtSignal(str)
    lock_requested = pyqtSignal()
    expand_requested = pyqtSignal()

    def __init__(self, show_expand: bool = True, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setSpacing(10)
        layout.addWidget(_title("Wallet"))

        self.wallet_combo = QComboBox()
        self.wallet_combo.activated.connect(self._on_wallet_activated)
        layout.addWidget(self.wallet_combo)

        self.address_label = QLabel("")
        self.address_label.setFont(QFont(Theme.MONO_FONT, 9))
        self.address_label.setWordWrap(True)
        layout.addWidget(self.address_label)
        layout.addStretch()

        btn_layout = QHBoxLayout()
        lock_btn = QPushButton("Lock")
        lock_btn.clicked.connect(self.lock_requested.emit)
        btn_layout.addWidget(lock_btn)
        if show_expand:
            expand_btn = QPushButton("Expand View")
            expand_btn.clicked.connect(self.expand_requested.emit)
            btn_layout.addWidget(expand_btn)
        layout.addLayout(btn_layout)

    def render(self, state: ScreenState):
        self.wallet_combo.blockSignals(True)
        self.wallet_combo.clear()
        for wallet in state.wallets:
            label = wallet.name or format_address(wallet.address)
            self.wallet_combo.addItem(label, wallet.address)
        if state.active_wallet:
            index = self.wallet_combo.findData(state.active_wallet.address)
            self.wallet_combo.setCurrentIndex(max(index, 0))
            self.address_label.setText(state.active_wallet.address)
        self.wallet_combo.blockSignals(False)

    def _on_wallet_activated(self, index: int):
        address = self.wallet_combo.itemData(index)
        if address:
            self.wallet_selected.emit(address)


class ApprovalScreen(QWidget):
    """Shared frame for approval screens: details, embedded unlock, decision."""

    approve_requested = pyqtSignal(str, str)  # request_id, address ("" = active wallet)
    reject_requested = pyqtSignal(str)  # request_id

    title_text = "Approve request"

    def __init__(self, parent=None):
        super().__init__(parent)
        self._request_id = ""  # The request this screen last rendered
        layout = QVBoxLayout(self)
        layout.setSpacing(10)
        layout.addWidget(_title(self.title_text))

        self.origin_label = _muted()
        layout.addWidget(self.origin_label)

        self.details = QFrame()
        self.details.setStyleSheet(f"QFrame {{ border: 1px solid {Theme.CHARCOAL}; }}")
        self.details_layout = QVBoxLayout(self.details)
        layout.addWidget(self.details)

        self.unlock_panel = UnlockPanel()
        layout.addWidget(self.unlock_panel)

        self.wallet_combo = QComboBox()
        layout.addWidget(self.wallet_combo)
        layout.addStretch()

        btn_layout = QHBoxLayout()
        self.reject_btn = QPushButton("Reject")
        self.reject_btn.clicked.connect(self._on_reject)
        btn_layout.addWidget(self.reject_btn)
        self.approve_btn = QPushButton("Approve")
        self.approve_btn.setDefault(True)
        self.approve_btn.clicked.connect(self._on_approve)
        btn_layout.addWidget(self.approve_btn)
        layout.addLayout(btn_layout)

    def _set_details(self, lines: list[str]):
        while self.details_layout.count():
            item = self.details_layout.takeAt(0)
            if item.widget():
                item.widget().deleteLater()
        for line in lines:
            label = QLabel(line)
            label.setWordWrap(True)
            label.setFont(QFont(Theme.MONO_FONT, 9))
            self.details_layout.addWidget(label)

    def describe(self, request) -> list[str]:
        return []

    def render(self, state: ScreenState):
        request = state.request
        self._request_id = request.id
        self.origin_label.setText(f"Requested by {request.origin}")
        self._set_details(self.describe(request))

        gated = state.requires_unlock
        self.unlock_panel.setVisible(gated)
        self.approve_btn.setEnabled(not gated and not state.busy)
        self.approve_btn.setText("Executing..." if state.busy else "Approve")
        self.reject_btn.setEnabled(not state.busy)
        self.wallet_combo.setVisible(not gated and len(state.wallets) > 1)
        self.wallet_combo.clear()
        for wallet in state.wallets:
            self.wallet_combo.addItem(wallet.name or format_address(wallet.address), wallet.address)
        if state.active_wallet:
            self.wallet_combo.setCurrentIndex(max(self.wallet_combo.findData(state.active_wallet.address), 0))

    def _on_approve(self):
        self.approve_requested.emit(self._request_id, self.wallet_combo.currentData() or "")

    def _on_reject(self):
        self.reject_requested.emit(self._request_id)


class ConnectionApprovalScreen(ApprovalScreen):
    title_text = "Connection request"

    def describe(self, request: ConnectionRequest) -> list[str]:
        lines = [f"App: {request.app_name}"]
        lines += [f"Permission: {p}" for p in sorted(request.permissions)]
        return lines


class ContractApprovalScreen(ApprovalScreen):
    title_text = "Contract request"

    def describe(self, request: ContractRequest) -> list[str]:
        if request.is_transfer:
            lines = [f"Send {request.value} to {request.contract_address}"]
        else:
            lines = [
                f"Contract: {request.contract_address}",
                f"Method: {request.method_name} ({request.kind})",
            ]
            lines += [f"  {p.name} ({p.type}) = {p.value}" for p in request.params]
            if request.value and request.value != "0":
                lines.append(f"Value: {request.value}")
        if request.gas_limit:
            lines.append(f"Gas limit: {request.gas_limit}")
        if request.gas_price is not None:
            lines.append(f"Gas price: {request.gas_price} gwei")
        if request.description:
            lines.append(request.description)
        return lines
