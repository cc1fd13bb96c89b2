"""
Errors - Failure taxonomy shared by the background, surfaces and bridge.

Every error carries a wire code so it can cross the message channel as a
plain dict and be rebuilt on the other side.
"""

from typing import Optional


class WalletRelayError(Exception):
    """Base class for all request lifecycle errors."""
    code = "ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        """Error payload for the message channel."""
        return {"status": "error", "code": self.code, "error": self.message}


class ValidationError(WalletRelayError):
    """A request is missing required fields or has malformed ones."""
    code = "INVALID_REQUEST"


class NotConnectedError(WalletRelayError):
    """A call that needs a connection was made before connect()."""
    code = "NOT_CONNECTED"


class ProviderUnavailableError(WalletRelayError):
    """No wallet is reachable from the bridge."""
    code = "PROVIDER_UNAVAILABLE"


class RequestConflict(WalletRelayError):
    """A request of the same kind is already pending."""
    code = "REQUEST_CONFLICT"


class AuthError(WalletRelayError):
    """Missing password setup or a password that does not verify."""
    code = "AUTH_FAILED"


class PolicyError(WalletRelayError):
    """The surface policy has no entry for a request kind."""
    code = "POLICY_ERROR"


class Abandoned(WalletRelayError):
    """The hosting surface went away without a decision."""
    code = "ABANDONED"


class RequestRejected(WalletRelayError):
    """The user explicitly rejected the request."""
    code = "REJECTED"


ERROR_CLASSES = {
    cls.code: cls
    for cls in (
        ValidationError,
        NotConnectedError,
        ProviderUnavailableError,
        RequestConflict,
        AuthError,
        PolicyError,
        Abandoned,
        RequestRejected,
    )
}


def error_from_code(code: Optional[str], message: str = "") -> WalletRelayError:
    """Rebuild a typed error from its wire code (unknown codes become the base class)."""
    cls = ERROR_CLASSES.get(code or "", WalletRelayError)
    return cls(message)
