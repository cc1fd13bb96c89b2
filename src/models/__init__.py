"""
Models package - Data models for the wallet relay.

Contains:
- PendingRequest: ConnectionRequest / ContractRequest tagged union
- SharedStore: Key/value state shared across execution contexts
- Settings: JSON-backed configuration
- Errors: Request lifecycle failure taxonomy
"""

from .errors import (
    WalletRelayError,
    ValidationError,
    NotConnectedError,
    ProviderUnavailableError,
    RequestConflict,
    AuthError,
    PolicyError,
    Abandoned,
    RequestRejected,
    error_from_code,
)
from .requests import (
    ConnectionRequest,
    ContractRequest,
    ContractParam,
    PendingRequest,
    build_request,
    request_from_dict,
    TAG_CONNECTION,
    TAG_CONTRACT,
    TAG_PRIORITY,
    CONTRACT_VIEW,
    CONTRACT_CALL,
    NATIVE_TRANSFER_METHOD,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_ABANDONED,
)
from .settings import Settings
from .store import SharedStore

__all__ = [
    "WalletRelayError",
    "ValidationError",
    "NotConnectedError",
    "ProviderUnavailableError",
    "RequestConflict",
    "AuthError",
    "PolicyError",
    "Abandoned",
    "RequestRejected",
    "error_from_code",
    "ConnectionRequest",
    "ContractRequest",
    "ContractParam",
    "PendingRequest",
    "build_request",
    "request_from_dict",
    "TAG_CONNECTION",
    "TAG_CONTRACT",
    "TAG_PRIORITY",
    "CONTRACT_VIEW",
    "CONTRACT_CALL",
    "NATIVE_TRANSFER_METHOD",
    "STATUS_APPROVED",
    "STATUS_REJECTED",
    "STATUS_ABANDONED",
    "Settings",
    "SharedStore",
]
