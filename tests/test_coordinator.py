import threading
import time

import pytest

from coordinator import Coordinator
from dispatchers import InvalidInput, InviteDispatcher, RedirectDispatcher
from invite_registry import InviteRegistry
from trigger_classifier import TriggerClassifier

TARGET = "10.0.0.5:19132"


@pytest.fixture
def registry(clock):
    return InviteRegistry(ttl_sec=300, clock=clock)


@pytest.fixture
def coordinator(registry, messenger, server):
    return Coordinator(
        classifier=TriggerClassifier(),
        registry=registry,
        invites=InviteDispatcher(messenger),
        redirects=RedirectDispatcher(server),
        target_endpoint=TARGET,
    )


def test_trigger_message_creates_pending_invite(coordinator, messenger):
    outcome = coordinator.on_message("Steve", "can I get an invite?")

    assert outcome.triggered and outcome.invite_sent
    assert outcome.target_endpoint == TARGET
    assert outcome.error is None
    assert [call[0] for call in messenger.calls] == ["Steve"]
    pending = coordinator.list_pending()
    assert [(p.actor, p.target_endpoint, p.age_ms) for p in pending] == [("Steve", TARGET, 0)]


def test_join_redirects_once(coordinator, server):
    coordinator.on_message("Steve", "can I get an invite?")

    first = coordinator.on_join("Steve")
    assert first.to_dict() == {"hadPending": True, "redirected": True, "targetEndpoint": TARGET}
    assert server.commands and all(actor == "Steve" for actor, _ in server.commands)

    second = coordinator.on_join("Steve")
    assert second.to_dict() == {"hadPending": False, "redirected": False}
    assert coordinator.list_pending() == []


def test_non_trigger_message_is_ignored(coordinator, messenger):
    coordinator.on_message("Steve", "invite")
    before = coordinator.list_pending()

    outcome = coordinator.on_message("Alex", "hello there")

    assert outcome.to_dict() == {"triggered": False, "inviteSent": False}
    assert coordinator.list_pending() == before
    assert [call[0] for call in messenger.calls] == ["Steve"]


def test_failed_invite_leaves_no_pending_state(coordinator, messenger):
    messenger.result = False

    outcome = coordinator.on_message("Rae", "join now")

    assert outcome.triggered
    assert not outcome.invite_sent
    assert outcome.error
    assert "Rae" not in [p.actor for p in coordinator.list_pending()]


def test_join_without_invite_mutates_nothing(coordinator, server):
    coordinator.on_message("Steve", "invite me")
    before = coordinator.list_pending()

    outcome = coordinator.on_join("Alex")

    assert not outcome.had_pending
    assert not outcome.redirected
    assert outcome.error is None
    assert coordinator.list_pending() == before
    assert server.commands == []


def test_redirect_failure_after_handoff_is_not_requeued(coordinator, server):
    coordinator.on_message("Steve", "invite")
    server.result = False

    outcome = coordinator.on_join("Steve")

    assert outcome.had_pending
    assert not outcome.redirected
    assert outcome.target_endpoint == TARGET
    assert "rejected" in outcome.error
    assert coordinator.on_join("Steve").had_pending is False


def test_repeat_trigger_keeps_single_invite(coordinator, clock):
    coordinator.on_message("Steve", "invite")
    clock.advance(4)
    coordinator.on_message("Steve", "invite again")

    pending = coordinator.list_pending()
    assert len(pending) == 1
    assert pending[0].age_ms == 0


def test_expired_invite_is_not_matched(coordinator, clock, server):
    coordinator.on_message("Steve", "invite")
    clock.advance(301)

    assert coordinator.list_pending() == []
    assert coordinator.on_join("Steve").had_pending is False
    assert server.commands == []


def test_sweep_expired_removes_old_entries(coordinator, clock):
    coordinator.on_message("Steve", "invite")
    clock.advance(200)
    coordinator.on_message("Alex", "join")
    clock.advance(150)

    expired = coordinator.sweep_expired()

    assert [invite.actor for invite in expired] == ["Steve"]
    assert [p.actor for p in coordinator.list_pending()] == ["Alex"]
    assert [p.age_ms for p in coordinator.list_pending()] == [150_000]


def test_empty_actor_is_reported_not_raised(coordinator, messenger):
    outcome = coordinator.on_message("", "invite")
    assert not outcome.triggered and not outcome.invite_sent
    assert outcome.error
    assert messenger.calls == []

    join = coordinator.on_join("  ")
    assert not join.had_pending
    assert join.error


def test_malformed_target_fails_fast(registry, messenger, server):
    with pytest.raises(InvalidInput):
        Coordinator(
            classifier=TriggerClassifier(),
            registry=registry,
            invites=InviteDispatcher(messenger),
            redirects=RedirectDispatcher(server),
            target_endpoint="10.0.0.5",
        )


def test_concurrent_joins_redirect_at_most_once(messenger):
    class SlowServer:
        def __init__(self):
            self.calls = 0
            self.lock = threading.Lock()

        def execute(self, actor, command):
            with self.lock:
                self.calls += 1
            time.sleep(0.05)
            return True

        def translate(self, endpoint):
            from dispatchers import parse_endpoint

            return parse_endpoint(endpoint)

    slow = SlowServer()
    coordinator = Coordinator(
        classifier=TriggerClassifier(),
        registry=InviteRegistry(),
        invites=InviteDispatcher(messenger),
        redirects=RedirectDispatcher(slow, ["transfer {actor} {host} {port}"]),
        target_endpoint=TARGET,
    )
    coordinator.on_message("Steve", "invite")

    barrier = threading.Barrier(2)
    outcomes = []

    def join():
        barrier.wait()
        outcomes.append(coordinator.on_join("Steve"))

    threads = [threading.Thread(target=join) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert sorted(o.redirected for o in outcomes) == [False, True]
    assert sorted(o.had_pending for o in outcomes) == [False, True]
    assert slow.calls == 1


def test_render_failure_after_handoff_returns_outcome(registry, messenger, server):
    coordinator = Coordinator(
        classifier=TriggerClassifier(),
        registry=registry,
        invites=InviteDispatcher(messenger),
        redirects=RedirectDispatcher(server, ["tp {actor} {port:q}"]),
        target_endpoint=TARGET,
    )
    coordinator.on_message("Steve", "invite")

    outcome = coordinator.on_join("Steve")

    assert outcome.had_pending
    assert not outcome.redirected
    assert "cannot render" in outcome.error
    assert server.commands == []


def test_injected_actor_is_reported_not_redirected(coordinator, messenger, server):
    outcome = coordinator.on_message('x" 1.2.3.4 1\nop x', "invite")

    assert not outcome.invite_sent
    assert "forbidden" in outcome.error
    assert messenger.calls == []
    assert coordinator.list_pending() == []
