"""
Request Registry - Store-backed pending requests, at most one per kind.
"""

import logging
import threading
from typing import Optional

from models import (
    SharedStore,
    PendingRequest,
    RequestConflict,
    build_request,
    request_from_dict,
    TAG_CONNECTION,
    TAG_CONTRACT,
    TAG_PRIORITY,
)
from models.store import KEY_PENDING_CONNECTION, KEY_PENDING_CONTRACT

logger = logging.getLogger(__name__)

REGISTRY_KEYS = {
    TAG_CONNECTION: KEY_PENDING_CONNECTION,
    TAG_CONTRACT: KEY_PENDING_CONTRACT,
}


class RequestRegistry:
    """
    Authoritative list of outstanding requests.

    A second request of a kind that is already pending is refused with
    RequestConflict instead of replacing the first one.
    """

    def __init__(self, store: SharedStore):
        self.store = store
        # Check-and-set in submit() must not interleave across server threads
        self._lock = threading.Lock()

    def _parse(self, kind: str, raw) -> Optional[PendingRequest]:
        """Parse a stored entry; a corrupt entry is cleared and reported absent."""
        if raw is None:
            return None
        try:
            return request_from_dict(raw)
        except (TypeError, KeyError, ValueError, AttributeError) as e:
            logger.error(f"Failed to parse pending {kind} request, clearing it: {e}")
            self.store.remove(REGISTRY_KEYS[kind])
            return None

    def submit(self, kind: str, payload: dict) -> str:
        """
        Validate and persist a new request.

        Raises:
            ValidationError: Payload is missing required fields
            RequestConflict: A request of this kind is already pending
        """
        request = build_request(kind, payload)
        key = REGISTRY_KEYS[kind]
        with self._lock:
            existing = self.peek(kind)
            if existing is not None:
                raise RequestConflict(
                    f"A {kind} request from {existing.origin} is already pending"
                )
            self.store.set(key, request.to_dict())
        logger.info(f"Pending {kind} request {request.id} from {request.origin}")
        return request.id

    def peek(self, kind: str) -> Optional[PendingRequest]:
        """The pending request of a kind, if any."""
        key = REGISTRY_KEYS.get(kind)
        if key is None:
            return None
        return self._parse(kind, self.store.get(key))

    def find(self, request_id: str) -> Optional[PendingRequest]:
        """Look up a pending request by id across all kinds."""
        for request in self.pending():
            if request.id == request_id:
                return request
        return None

    def pending(self, snapshot: Optional[dict] = None) -> list[PendingRequest]:
        """All pending requests, highest priority first."""
        snapshot = snapshot if snapshot is not None else self.store.snapshot()
        requests = []
        for kind in TAG_PRIORITY:
            request = self._parse(kind, snapshot.get(REGISTRY_KEYS[kind]))
            if request is not None:
                requests.append(request)
        return requests

    def resolve(self, request_id: str, outcome: str) -> bool:
        """
        Clear a request after a terminal outcome.

        Returns True if an entry was cleared, False if it was already gone
        (duplicate close events, late messages).
        """
        with self._lock:
            for kind in TAG_PRIORITY:
                request = self.peek(kind)
                if request is not None and request.id == request_id:
                    self.store.remove(REGISTRY_KEYS[kind])
                    logger.info(f"Resolved {kind} request {request_id}: {outcome}")
                    return True
        logger.debug(f"Request {request_id} already resolved, ignoring {outcome}")
        return False
