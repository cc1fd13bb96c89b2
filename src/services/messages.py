"""
Message channel schema between bridge, background and surfaces.

Messages are plain dicts with a "type" field so they cross the HTTP
listener unchanged.
"""

from typing import Any, Optional

from models import (
    ValidationError,
    PendingRequest,
    TAG_CONNECTION,
    TAG_CONTRACT,
    CONTRACT_CALL,
    NATIVE_TRANSFER_METHOD,
    Abandoned,
)

# page -> background (need a user decision)
CONNECT_REQUEST = "CONNECT_REQUEST"
CONTRACT_REQUEST = "CONTRACT_REQUEST"
TRANSFER_REQUEST = "TRANSFER_REQUEST"

# page -> background (answered immediately)
BALANCE_REQUEST = "BALANCE_REQUEST"
SIGN_MESSAGE_REQUEST = "SIGN_MESSAGE_REQUEST"
NETWORK_REQUEST = "NETWORK_REQUEST"
DISCONNECT_REQUEST = "DISCONNECT_REQUEST"

# surface -> background -> page
CONNECTION_RESULT = "CONNECTION_RESULT"
CONTRACT_RESULT = "CONTRACT_RESULT"

PAGE_REQUEST_TAGS = {
    CONNECT_REQUEST: TAG_CONNECTION,
    CONTRACT_REQUEST: TAG_CONTRACT,
    TRANSFER_REQUEST: TAG_CONTRACT,
}

RESULT_TYPES = {
    TAG_CONNECTION: CONNECTION_RESULT,
    TAG_CONTRACT: CONTRACT_RESULT,
}

RESULT_TAGS = {v: k for k, v in RESULT_TYPES.items()}


def transfer_payload(message: dict) -> dict:
    """Turn a TRANSFER_REQUEST into a contract call payload."""
    if not message.get("to") or not message.get("amount"):
        raise ValidationError("to and amount are required")
    return {
        "origin": message.get("origin"),
        "contractAddress": message["to"],
        "methodName": NATIVE_TRANSFER_METHOD,
        "kind": CONTRACT_CALL,
        "params": [],
        "value": str(message["amount"]),
        "description": message.get("message"),
        "gasLimit": message.get("gasLimit"),
        "gasPrice": message.get("gasPrice"),
    }


def connection_result(request: PendingRequest, approved: bool,
                      address: Optional[str] = None) -> dict:
    message = {
        "type": CONNECTION_RESULT,
        "request_id": request.id,
        "origin": request.origin,
        "approved": approved,
    }
    if address:
        message["address"] = address
    return message


def contract_result(request: PendingRequest, approved: bool, result: Any = None,
                    error: Optional[str] = None) -> dict:
    message = {
        "type": CONTRACT_RESULT,
        "request_id": request.id,
        "origin": request.origin,
        "approved": approved,
    }
    if result is not None:
        message["result"] = result
    if error:
        message["error"] = error
    return message


def abandoned_result(request: PendingRequest, reason: str) -> dict:
    """Synthetic rejection sent when a surface goes away without a decision."""
    message = {
        "type": RESULT_TYPES[request.tag],
        "request_id": request.id,
        "origin": request.origin,
        "approved": False,
        "error": reason,
        "code": Abandoned.code,
    }
    return message
