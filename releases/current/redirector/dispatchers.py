"""Invite and redirect dispatchers wrapping injected capabilities."""
from __future__ import annotations

import logging
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AbstractSet, List, Optional, Protocol, Sequence

LOGGER = logging.getLogger("redirector.dispatchers")

DEFAULT_INVITE_MESSAGE = "Invite sent to {actor}. Join the invite world to be moved to the main server."
DEFAULT_REDIRECT_COMMANDS = (
    "say Redirecting {actor} to main server...",
    'transfer "{actor}" {host} {port}',
)
INVITE_FIELDS = frozenset({"actor"})
COMMAND_FIELDS = frozenset({"actor", "host", "port", "target"})


class InvalidInput(ValueError):
    """Raised for a bad actor identity, endpoint or template."""


class DispatchError(RuntimeError):
    """Raised when an external capability fails to carry out a request."""


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def parse_endpoint(value: str) -> Endpoint:
    """Parse ``host:port`` (or ``[v6host]:port``) into an :class:`Endpoint`."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("endpoint must be a non-empty 'host:port' string")
    text = value.strip()
    if text.startswith("["):
        host, sep, port_text = text[1:].partition("]:")
    else:
        host, sep, port_text = text.rpartition(":")
    if not sep or not host or ":" in port_text:
        raise InvalidInput(f"malformed endpoint: {value!r}")
    try:
        port = int(port_text)
    except ValueError:
        raise InvalidInput(f"malformed endpoint port: {value!r}") from None
    if not 0 < port < 65536:
        raise InvalidInput(f"endpoint port out of range: {value!r}")
    return Endpoint(host=host, port=port)


def require_actor(actor: str) -> str:
    if not isinstance(actor, str) or not actor.strip():
        raise InvalidInput("actor must be a non-empty string")
    # Actors are substituted unescaped into server commands.
    if any(ch in '"\\' or not ch.isprintable() for ch in actor):
        raise InvalidInput(f"actor contains forbidden characters: {actor!r}")
    return actor


def check_template(template: str, allowed: AbstractSet[str]) -> str:
    """Reject a format template that uses fields outside *allowed*.

    Literal braces (e.g. Bedrock JSON text) must be doubled: ``{{"text": ...}}``.
    """
    if not isinstance(template, str) or not template.strip():
        raise InvalidInput("template must be a non-empty string")
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as exc:
        raise InvalidInput(f"malformed template {template!r}: {exc}") from exc
    for _literal, field_name, format_spec, _conversion in parsed:
        if field_name is None:
            continue
        if field_name not in allowed:
            raise InvalidInput(
                f"template {template!r} uses unknown field {{{field_name}}};"
                f" allowed: {', '.join(sorted(allowed))} (escape literal braces as {{{{ }}}})"
            )
        if format_spec and "{" in format_spec:
            raise InvalidInput(f"template {template!r} nests fields in a format spec")
    return template


def render_template(template: str, **fields: object) -> str:
    try:
        return template.format(**fields)
    except (KeyError, IndexError, ValueError) as exc:
        raise InvalidInput(f"cannot render template {template!r}: {exc}") from exc


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessagingCapability(Protocol):
    def notify(self, actor: str, message: str) -> bool: ...


class ServerCommandCapability(Protocol):
    def execute(self, actor: str, command: str) -> bool: ...

    def translate(self, endpoint: str) -> Endpoint: ...


@dataclass
class InviteReceipt:
    actor: str
    success: bool
    timestamp: str
    message: Optional[str] = None


@dataclass
class RedirectReceipt:
    actor: str
    target_endpoint: str
    host: str
    port: int
    success: bool
    timestamp: str
    commands_sent: List[str] = field(default_factory=list)


class InviteDispatcher:
    """Ask the messaging channel to tell an actor about their invite."""

    def __init__(self, messenger: MessagingCapability, message_template: str = DEFAULT_INVITE_MESSAGE) -> None:
        self._messenger = messenger
        self._template = check_template(message_template, INVITE_FIELDS)

    def send_invite(self, actor: str) -> InviteReceipt:
        require_actor(actor)
        message = render_template(self._template, actor=actor)
        LOGGER.info("sending invite", extra={"actor": actor})
        try:
            delivered = self._messenger.notify(actor, message)
        except Exception as exc:
            LOGGER.warning("invite notify raised", extra={"actor": actor, "error": str(exc)})
            raise DispatchError(f"failed to send invite to {actor}: {exc}") from exc
        if not delivered:
            raise DispatchError(f"messaging channel rejected invite for {actor}")
        return InviteReceipt(actor=actor, success=True, timestamp=_utc_timestamp(), message=message)


class RedirectDispatcher:
    """Issue the configured command sequence that moves an actor to a target."""

    def __init__(
        self,
        server: ServerCommandCapability,
        command_templates: Sequence[str] = DEFAULT_REDIRECT_COMMANDS,
    ) -> None:
        if not command_templates:
            raise ValueError("at least one redirect command template is required")
        self._server = server
        self._templates = [check_template(t, COMMAND_FIELDS) for t in command_templates]

    def redirect_actor(self, actor: str, target_endpoint: str) -> RedirectReceipt:
        require_actor(actor)
        try:
            endpoint = self._server.translate(target_endpoint)
        except InvalidInput:
            raise
        except ValueError as exc:
            raise InvalidInput(f"malformed endpoint: {target_endpoint!r}") from exc

        commands = [
            render_template(template, actor=actor, host=endpoint.host, port=endpoint.port, target=target_endpoint)
            for template in self._templates
        ]
        LOGGER.info("redirecting actor", extra={"actor": actor, "target": target_endpoint})
        sent: List[str] = []
        for index, command in enumerate(commands, start=1):
            try:
                ok = self._server.execute(actor, command)
            except Exception as exc:
                LOGGER.warning(
                    "redirect command raised",
                    extra={"actor": actor, "command": command, "error": str(exc)},
                )
                raise DispatchError(
                    f"redirect command {index}/{len(commands)} for {actor} failed: {exc}"
                ) from exc
            if not ok:
                raise DispatchError(f"redirect command {index}/{len(commands)} for {actor} was rejected")
            sent.append(command)

        return RedirectReceipt(
            actor=actor,
            target_endpoint=target_endpoint,
            host=endpoint.host,
            port=endpoint.port,
            success=True,
            timestamp=_utc_timestamp(),
            commands_sent=sent,
        )


__all__ = [
    "DEFAULT_INVITE_MESSAGE",
    "DEFAULT_REDIRECT_COMMANDS",
    "COMMAND_FIELDS",
    "DispatchError",
    "Endpoint",
    "INVITE_FIELDS",
    "InvalidInput",
    "InviteDispatcher",
    "InviteReceipt",
    "MessagingCapability",
    "RedirectDispatcher",
    "RedirectReceipt",
    "ServerCommandCapability",
    "check_template",
    "parse_endpoint",
    "render_template",
    "require_actor",
]
