from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
REDIRECTOR_ROOT = REPO_ROOT / "releases" / "current" / "redirector"

if str(REDIRECTOR_ROOT) not in sys.path:
    sys.path.insert(0, str(REDIRECTOR_ROOT))


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMessenger:
    def __init__(self, result: bool = True, error: Exception = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def notify(self, actor: str, message: str) -> bool:
        self.calls.append((actor, message))
        if self.error is not None:
            raise self.error
        return self.result


class RecordingServer:
    def __init__(self, result: bool = True, error: Exception = None) -> None:
        self.result = result
        self.error = error
        self.commands: list[tuple[str, str]] = []

    def execute(self, actor: str, command: str) -> bool:
        self.commands.append((actor, command))
        if self.error is not None:
            raise self.error
        return self.result

    def translate(self, endpoint: str):
        from dispatchers import parse_endpoint

        return parse_endpoint(endpoint)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def server() -> RecordingServer:
    return RecordingServer()
