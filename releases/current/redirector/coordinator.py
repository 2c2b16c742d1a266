"""Correlate invite requests with join events and hand off redirects."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from dispatchers import (
    DispatchError,
    InvalidInput,
    InviteDispatcher,
    RedirectDispatcher,
    parse_endpoint,
    require_actor,
)
from invite_registry import InviteRegistry, PendingInvite
from trigger_classifier import TriggerClassifier

LOGGER = logging.getLogger("redirector.coordinator")


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass
class MessageOutcome:
    triggered: bool
    invite_sent: bool
    target_endpoint: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "triggered": self.triggered,
                "inviteSent": self.invite_sent,
                "targetEndpoint": self.target_endpoint,
                "error": self.error,
            }
        )


@dataclass
class JoinOutcome:
    had_pending: bool
    redirected: bool
    target_endpoint: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "hadPending": self.had_pending,
                "redirected": self.redirected,
                "targetEndpoint": self.target_endpoint,
                "error": self.error,
            }
        )


@dataclass(frozen=True)
class PendingView:
    actor: str
    target_endpoint: str
    age_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {"actor": self.actor, "targetEndpoint": self.target_endpoint, "ageMs": self.age_ms}


class Coordinator:
    """Owns the invite registry and drives the NONE -> PENDING -> NONE cycle.

    Operations return outcome objects instead of raising; the caller decides
    whether to retry. Dispatcher calls run outside the registry lock. On join
    the pending entry is taken before the redirect is dispatched, so only one
    of several concurrent joins for the same actor can redirect.
    """

    def __init__(
        self,
        classifier: TriggerClassifier,
        registry: InviteRegistry,
        invites: InviteDispatcher,
        redirects: RedirectDispatcher,
        target_endpoint: str,
    ) -> None:
        parse_endpoint(target_endpoint)
        self._classifier = classifier
        self._registry = registry
        self._invites = invites
        self._redirects = redirects
        self._target = target_endpoint

    @property
    def target_endpoint(self) -> str:
        return self._target

    def on_message(self, actor: str, text: str) -> MessageOutcome:
        try:
            require_actor(actor)
        except InvalidInput as exc:
            LOGGER.warning("rejected message", extra={"error": str(exc)})
            return MessageOutcome(triggered=False, invite_sent=False, error=str(exc))

        if not self._classifier.is_trigger(text):
            LOGGER.debug("message is not an invite trigger", extra={"actor": actor})
            return MessageOutcome(triggered=False, invite_sent=False)

        LOGGER.info("invite trigger detected", extra={"actor": actor})
        try:
            self._invites.send_invite(actor)
        except (DispatchError, InvalidInput) as exc:
            LOGGER.error("invite dispatch failed", extra={"actor": actor, "error": str(exc)})
            return MessageOutcome(triggered=True, invite_sent=False, error=str(exc))

        self._registry.put(actor, self._target)
        LOGGER.info("invite pending", extra={"actor": actor, "target": self._target})
        return MessageOutcome(triggered=True, invite_sent=True, target_endpoint=self._target)

    def on_join(self, actor: str) -> JoinOutcome:
        try:
            require_actor(actor)
        except InvalidInput as exc:
            LOGGER.warning("rejected join", extra={"error": str(exc)})
            return JoinOutcome(had_pending=False, redirected=False, error=str(exc))

        invite = self._registry.take(actor)
        if invite is None:
            LOGGER.info("no pending invite", extra={"actor": actor})
            return JoinOutcome(had_pending=False, redirected=False)

        target = invite.target_endpoint
        try:
            self._redirects.redirect_actor(actor, target)
        except (DispatchError, InvalidInput) as exc:
            # Entry is already gone; the actor must request a new invite.
            LOGGER.error("redirect failed", extra={"actor": actor, "target": target, "error": str(exc)})
            return JoinOutcome(had_pending=True, redirected=False, target_endpoint=target, error=str(exc))

        LOGGER.info("actor redirected", extra={"actor": actor, "target": target})
        return JoinOutcome(had_pending=True, redirected=True, target_endpoint=target)

    def list_pending(self) -> List[PendingView]:
        return [
            PendingView(actor=invite.actor, target_endpoint=invite.target_endpoint, age_ms=int(age * 1000))
            for invite, age in self._registry.snapshot()
        ]

    def sweep_expired(self) -> List[PendingInvite]:
        expired = self._registry.prune()
        for invite in expired:
            LOGGER.info("pending invite expired", extra={"actor": invite.actor})
        return expired


__all__ = ["Coordinator", "JoinOutcome", "MessageOutcome", "PendingView"]
