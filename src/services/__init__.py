"""
Services package - Request lifecycle services for Wallet Relay.

Contains:
- RequestRegistry: Store-backed pending requests, one per kind
- SurfacePolicy: Request kind -> surface table
- RequestLifecycleController: Screen state machine shared by all surfaces
- BackgroundService: Routes page messages and surface results
- BridgeServer: HTTP listener carrying the message channel
"""

from .registry import RequestRegistry
from .surfaces import SurfacePolicy, SurfaceSpec, surface_for, SURFACE_POPUP, SURFACE_TAB
from .controller import RequestLifecycleController, SurfaceContext, ScreenState
from .background import BackgroundService
from .server import BridgeServer, server_stats

__all__ = [
    "RequestRegistry",
    "SurfacePolicy",
    "SurfaceSpec",
    "surface_for",
    "SURFACE_POPUP",
    "SURFACE_TAB",
    "RequestLifecycleController",
    "SurfaceContext",
    "ScreenState",
    "BackgroundService",
    "BridgeServer",
    "server_stats",
]
