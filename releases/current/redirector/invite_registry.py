"""Pending-invite store keyed by actor identity."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

LOGGER = logging.getLogger("redirector.registry")


@dataclass(frozen=True)
class PendingInvite:
    """An actor waiting to be redirected once they join."""

    actor: str
    created_at: float
    target_endpoint: str


class InviteRegistry:
    """Thread-safe map from actor to their single pending invite.

    All reads and writes go through one lock. Entries older than ``ttl_sec``
    are treated as gone by every accessor, whether or not :meth:`prune` has
    run yet. ``ttl_sec=None`` disables expiry.
    """

    def __init__(
        self,
        ttl_sec: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        lock: Optional[threading.Lock] = None,
    ) -> None:
        if ttl_sec is not None and ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        self._ttl = ttl_sec
        self._clock = clock
        self._lock = lock or threading.Lock()
        self._pending: Dict[str, PendingInvite] = {}

    @property
    def ttl_sec(self) -> Optional[float]:
        return self._ttl

    def put(self, actor: str, target_endpoint: str) -> PendingInvite:
        with self._lock:
            invite = PendingInvite(actor=actor, created_at=self._clock(), target_endpoint=target_endpoint)
            replaced = self._pending.pop(actor, None)
            self._pending[actor] = invite
        if replaced is not None:
            LOGGER.debug("replaced pending invite", extra={"actor": actor})
        return invite

    def take(self, actor: str) -> Optional[PendingInvite]:
        """Remove and return the invite for *actor*, or None if absent or expired."""
        with self._lock:
            invite = self._pending.pop(actor, None)
            if invite is not None and self._is_expired(invite, self._clock()):
                LOGGER.info("discarded expired invite on take", extra={"actor": actor})
                return None
            return invite

    def get(self, actor: str) -> Optional[PendingInvite]:
        with self._lock:
            invite = self._pending.get(actor)
            if invite is not None and self._is_expired(invite, self._clock()):
                return None
            return invite

    def prune(self) -> List[PendingInvite]:
        """Drop every expired invite and return the ones removed."""
        with self._lock:
            return self._prune_locked(self._clock())

    def snapshot(self) -> List[Tuple[PendingInvite, float]]:
        """Return ``(invite, age_sec)`` pairs in insertion order."""
        with self._lock:
            now = self._clock()
            self._prune_locked(now)
            return [(invite, max(0.0, now - invite.created_at)) for invite in self._pending.values()]

    def __contains__(self, actor: object) -> bool:
        return isinstance(actor, str) and self.get(actor) is not None

    def __len__(self) -> int:
        """Count live invites; expired entries are left for :meth:`prune`."""
        with self._lock:
            now = self._clock()
            return sum(1 for invite in self._pending.values() if not self._is_expired(invite, now))

    def _is_expired(self, invite: PendingInvite, now: float) -> bool:
        return self._ttl is not None and now - invite.created_at > self._ttl

    def _prune_locked(self, now: float) -> List[PendingInvite]:
        expired = [invite for invite in self._pending.values() if self._is_expired(invite, now)]
        for invite in expired:
            del self._pending[invite.actor]
        return expired


__all__ = ["InviteRegistry", "PendingInvite"]
