"""
UI package - PyQt6 surfaces.

Contains:
- Theme: Design system colors and fonts
- Screens: One widget per controller screen
- Surfaces: Popup and tab windows, and the SurfaceHost that creates them
"""

from .theme import Theme, app_stylesheet, show_warning, show_info
from .surfaces import SurfaceHost, SurfaceWindow, PopupSurface, TabSurface

__all__ = [
    "Theme",
    "app_stylesheet",
    "show_warning",
    "show_info",
    "SurfaceHost",
    "SurfaceWindow",
    "PopupSurface",
    "TabSurface",
]
