"""
Bridge package - Page-side SDK for Wallet Relay.

Contains:
- Bridge: Future-returning SDK calls with local precondition checks
- LocalTransport: In-process channel to a BackgroundService
- HttpTransport: urllib channel to the bridge listener
"""

from .bridge import Bridge, EVENT_CONNECT, EVENT_DISCONNECT, EVENT_ACCOUNTS_CHANGED
from .transport import LocalTransport, HttpTransport, DEFAULT_BRIDGE_URL

__all__ = [
    "Bridge",
    "EVENT_CONNECT",
    "EVENT_DISCONNECT",
    "EVENT_ACCOUNTS_CHANGED",
    "LocalTransport",
    "HttpTransport",
    "DEFAULT_BRIDGE_URL",
]
