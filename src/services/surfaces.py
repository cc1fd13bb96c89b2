"""
Surface Policy - Which window a request kind opens.

The table is pure data so it can be checked without any window system.
Every request kind opens the popup; the tab is only ever opened by the
user asking for the expanded view.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from models import PolicyError, TAG_CONNECTION, CONTRACT_VIEW, CONTRACT_CALL

logger = logging.getLogger(__name__)

SURFACE_POPUP = "popup"
SURFACE_TAB = "tab"

# Fixed popup viewport, anchored to the tray entry point
POPUP_WIDTH = 400
POPUP_HEIGHT = 600

# Initial size of the expanded view
TAB_WIDTH = 960
TAB_HEIGHT = 720

SURFACE_POLICY = {
    TAG_CONNECTION: SURFACE_POPUP,
    CONTRACT_VIEW: SURFACE_POPUP,
    CONTRACT_CALL: SURFACE_POPUP,
}

SURFACE_SIZES = {
    SURFACE_POPUP: (POPUP_WIDTH, POPUP_HEIGHT),
    SURFACE_TAB: (TAB_WIDTH, TAB_HEIGHT),
}


@dataclass(frozen=True)
class SurfaceSpec:
    """What the host needs to create a window."""
    surface_type: str
    width: int
    height: int
    request_id: Optional[str] = None   # Set when opened for a specific request


def surface_for(kind: str) -> str:
    """Look up the surface for a request kind; unknown kinds are an error."""
    try:
        return SURFACE_POLICY[kind]
    except KeyError:
        raise PolicyError(f"No surface policy for request kind: {kind}") from None


class SurfacePolicy:
    """Opens surfaces through the host's window-creation primitive."""

    def __init__(self, open_window: Callable[[SurfaceSpec], str]):
        """
        Args:
            open_window: Host primitive; creates the window and returns its surface id
        """
        self._open_window = open_window

    def open_surface(self, kind: str, request_id: Optional[str] = None) -> str:
        """Open the surface for a request kind. Returns the surface id."""
        surface_type = surface_for(kind)
        width, height = SURFACE_SIZES[surface_type]
        spec = SurfaceSpec(surface_type, width, height, request_id)
        surface_id = self._open_window(spec)
        logger.info(f"Opened {surface_type} surface {surface_id} for {kind} request")
        return surface_id

    def open_expanded_view(self) -> str:
        """Open the tab surface (explicit user action only)."""
        width, height = SURFACE_SIZES[SURFACE_TAB]
        return self._open_window(SurfaceSpec(SURFACE_TAB, width, height))
