"""Classify chat messages as invite requests."""
from __future__ import annotations

from typing import Iterable, Tuple

DEFAULT_TRIGGER_TOKENS: Tuple[str, ...] = (
    "invite",
    "join",
    "inv",
    "redirect",
    "connect",
    "!invite",
    "!join",
)


class TriggerClassifier:
    """Case-insensitive substring match against a fixed token set."""

    def __init__(self, tokens: Iterable[str] = DEFAULT_TRIGGER_TOKENS) -> None:
        # Normalize tokens to lowercase; blanks would match every message.
        normalized = []
        for token in tokens:
            token = (token or "").strip().lower()
            if token and token not in normalized:
                normalized.append(token)
        self._tokens: Tuple[str, ...] = tuple(normalized)

    @property
    def tokens(self) -> Tuple[str, ...]:
        return self._tokens

    def is_trigger(self, text: str) -> bool:
        if not isinstance(text, str) or not text:
            return False
        lowered = text.lower()
        return any(token in lowered for token in self._tokens)


_DEFAULT = TriggerClassifier()


def is_invite_trigger(text: str) -> bool:
    """Return True if *text* contains any of the default trigger tokens."""
    return _DEFAULT.is_trigger(text)


__all__ = ["DEFAULT_TRIGGER_TOKENS", "TriggerClassifier", "is_invite_trigger"]
