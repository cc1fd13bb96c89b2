"""
UI Theme - Design system colors and fonts.
"""

from PyQt6.QtWidgets import QMessageBox


class Theme:
    """Wallet Relay colors from the design system."""

    # Brand colors
    LIME = "#baea2a"
    LIME_DIM = "#7a9a1a"
    BLACK = "#09090b"          # Our black (not pure black)
    BLACK_LIGHT = "#121214"    # Elevated surfaces
    CHARCOAL = "#4A4543"       # Borders
    RUST = "#B7410E"
    WHITE = "#fafafa"

    # Status colors
    SUCCESS = "#22c55e"
    ERROR = "#ef4444"
    WARNING = "#f59e0b"

    # Typography
    MONO_FONT = "JetBrains Mono"

    MIN_POPUP_WIDTH = 300


def app_stylesheet() -> str:
    """Application-wide stylesheet shared by every surface."""
    return f"""
        QWidget {{
            background-color: {Theme.BLACK};
            color: {Theme.WHITE};
        }}
        QLineEdit, QTextEdit, QComboBox {{
            background-color: {Theme.BLACK_LIGHT};
            border: 1px solid {Theme.CHARCOAL};
            padding: 6px;
        }}
        QPushButton {{
            background-color: {Theme.BLACK_LIGHT};
            border: 1px solid {Theme.CHARCOAL};
            color: {Theme.LIME};
            padding: 6px 12px;
        }}
        QPushButton:default {{
            background-color: {Theme.LIME_DIM};
            color: {Theme.BLACK};
        }}
        QPushButton:disabled {{
            color: {Theme.CHARCOAL};
        }}
    """


def show_warning(parent, title: str, message: str) -> None:
    """Show a warning dialog with consistent sizing."""
    msg = QMessageBox(parent)
    msg.setWindowTitle(title)
    msg.setText(message)
    msg.setIcon(QMessageBox.Icon.Warning)
    msg.setStandardButtons(QMessageBox.StandardButton.Ok)
    msg.setMinimumWidth(Theme.MIN_POPUP_WIDTH)
    msg.exec()


def show_info(parent, title: str, message: str) -> None:
    """Show an info dialog with consistent sizing."""
    msg = QMessageBox(parent)
    msg.setWindowTitle(title)
    msg.setText(message)
    msg.setIcon(QMessageBox.Icon.Information)
    msg.setStandardButtons(QMessageBox.StandardButton.Ok)
    msg.setMinimumWidth(Theme.MIN_POPUP_WIDTH)
    msg.exec()
