"""
Pending request models.

A page asks the wallet to do something; the background turns that ask into
exactly one of these records and keeps it in the request registry until a
terminal outcome.

Status lifecycle:
- created: Built from a page message, not yet stored
- pending: Stored in the registry, awaiting the user
- approved: User approved on a surface
- rejected: User rejected on a surface
- abandoned: Surface closed (or went idle) without a decision
"""

import time
import uuid
from dataclasses import dataclass, asdict, field
from typing import Any, Optional, Union

from .errors import ValidationError


# Request tags (registry holds at most one pending request per tag)
TAG_CONNECTION = "connection"
TAG_CONTRACT = "contract"

# Priority order used when more than one tag is pending
TAG_PRIORITY = (TAG_CONNECTION, TAG_CONTRACT)

# Contract call kinds
CONTRACT_VIEW = "view"
CONTRACT_CALL = "call"
CONTRACT_KINDS = (CONTRACT_VIEW, CONTRACT_CALL)

# Reserved method name for native value transfers routed as contract calls
NATIVE_TRANSFER_METHOD = "__transfer__"

# Status values
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_ABANDONED = "abandoned"

DEFAULT_PERMISSIONS = ("view_address",)


def _new_id() -> str:
    return str(uuid.uuid4())


def _require(payload: dict, *names: str) -> None:
    missing = [n for n in names if not payload.get(n)]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


@dataclass
class ContractParam:
    """One positional argument of a contract method."""
    name: str
    type: str
    value: Any

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ContractParam":
        if not isinstance(data, dict):
            raise ValidationError("Each param must be an object with name, type and value")
        return cls(
            name=str(data.get("name", "")),
            type=str(data.get("type", "")),
            value=data.get("value"),
        )


@dataclass
class ConnectionRequest:
    """A page asking to see the active address."""
    origin: str
    app_name: str
    app_icon: Optional[str] = None
    permissions: set[str] = field(default_factory=lambda: set(DEFAULT_PERMISSIONS))
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=time.time)
    tag: str = TAG_CONNECTION

    @property
    def surface_kind(self) -> str:
        """Key into the surface policy table."""
        return TAG_CONNECTION

    @classmethod
    def from_message(cls, payload: dict) -> "ConnectionRequest":
        """Build from a CONNECT_REQUEST message body."""
        _require(payload, "origin")
        permissions = payload.get("permissions") or list(DEFAULT_PERMISSIONS)
        if not isinstance(permissions, (list, tuple, set)):
            raise ValidationError("permissions must be a list")
        return cls(
            origin=payload["origin"],
            app_name=payload.get("appName") or payload["origin"],
            app_icon=payload.get("appIcon"),
            permissions={str(p) for p in permissions},
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["permissions"] = sorted(self.permissions)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ConnectionRequest":
        return cls(
            origin=data["origin"],
            app_name=data.get("app_name", ""),
            app_icon=data.get("app_icon"),
            permissions=set(data.get("permissions", [])),
            id=data["id"],
            created_at=data.get("created_at", 0.0),
        )


@dataclass
class ContractRequest:
    """A page asking for a contract view call or a state-changing call."""
    origin: str
    contract_address: str
    method_name: str
    kind: str                                   # view | call
    params: list[ContractParam] = field(default_factory=list)
    description: Optional[str] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[float] = None
    value: Optional[str] = None                 # Native value sent with a call
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=time.time)
    tag: str = TAG_CONTRACT

    @property
    def surface_kind(self) -> str:
        """Key into the surface policy table (view or call)."""
        return self.kind

    @property
    def is_transfer(self) -> bool:
        return self.method_name == NATIVE_TRANSFER_METHOD

    @classmethod
    def from_message(cls, payload: dict) -> "ContractRequest":
        """Build from a CONTRACT_REQUEST message body."""
        _require(payload, "origin", "contractAddress", "methodName")
        kind = payload.get("kind") or CONTRACT_CALL
        if kind not in CONTRACT_KINDS:
            raise ValidationError(f"Invalid contract call kind: '{kind}'. Must be view or call")
        params = payload.get("params") or []
        if not isinstance(params, list):
            raise ValidationError("params must be a list")
        gas_limit = payload.get("gasLimit")
        gas_price = payload.get("gasPrice")
        try:
            gas_limit = int(gas_limit) if gas_limit is not None else None
            gas_price = float(gas_price) if gas_price is not None else None
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid gas setting: {e}") from e
        return cls(
            origin=payload["origin"],
            contract_address=payload["contractAddress"],
            method_name=payload["methodName"],
            kind=kind,
            params=[ContractParam.from_dict(p) for p in params],
            description=payload.get("description"),
            gas_limit=gas_limit,
            gas_price=gas_price,
            value=str(payload["value"]) if payload.get("value") is not None else None,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ContractRequest":
        return cls(
            origin=data["origin"],
            contract_address=data["contract_address"],
            method_name=data["method_name"],
            kind=data["kind"],
            params=[ContractParam.from_dict(p) for p in data.get("params", [])],
            description=data.get("description"),
            gas_limit=data.get("gas_limit"),
            gas_price=data.get("gas_price"),
            value=data.get("value"),
            id=data["id"],
            created_at=data.get("created_at", 0.0),
        )


PendingRequest = Union[ConnectionRequest, ContractRequest]

REQUEST_CLASSES = {
    TAG_CONNECTION: ConnectionRequest,
    TAG_CONTRACT: ContractRequest,
}


def build_request(tag: str, payload: dict) -> PendingRequest:
    """Validate a page payload and build the request for a tag."""
    cls = REQUEST_CLASSES.get(tag)
    if cls is None:
        raise ValidationError(f"Unknown request kind: {tag}")
    if not isinstance(payload, dict):
        raise ValidationError("Request payload must be an object")
    return cls.from_message(payload)


def request_from_dict(data: dict) -> PendingRequest:
    """Rebuild a stored request from its tagged dict."""
    cls = REQUEST_CLASSES.get(data.get("tag", ""))
    if cls is None:
        raise ValueError(f"Unknown request tag: {data.get('tag')}")
    return cls.from_dict(data)
