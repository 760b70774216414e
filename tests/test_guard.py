from __future__ import annotations

import pytest

from harm_work.engine import ProjectSwitchGuard, SwitchAction, WorkSessionManager


@pytest.fixture
def working(store, settings, session_clock):
    WorkSessionManager(store, settings_provider=settings, clock=session_clock).start(project="harm")
    return store


def _guard(store, settings) -> ProjectSwitchGuard:
    return ProjectSwitchGuard(store, settings_provider=settings)


def test_no_bound_project_allows_everything(store, settings) -> None:
    decision = _guard(store, settings).check("anything")
    assert decision.action is SwitchAction.ALLOW
    assert decision.allowed
    assert decision.message == ""
    assert store.load_enforcement().violations == 0


def test_same_project_is_allowed(working, settings) -> None:
    decision = _guard(working, settings).check("harm", current="harm")
    assert decision.action is SwitchAction.ALLOW
    assert working.load_enforcement().violations == 0


@pytest.mark.parametrize("destination", [" harm", "harm\n", "\tharm  "])
def test_padded_destination_matches_bound_project(working, settings, destination) -> None:
    settings.update(block_project_switch=True)
    decision = _guard(working, settings).check(destination)

    assert decision.action is SwitchAction.ALLOW
    assert decision.destination == "harm"
    assert working.load_enforcement().violations == 0


def test_warn_mode_counts_violation_and_keeps_project(working, settings) -> None:
    decision = _guard(working, settings).check("other-repo", current="harm")

    assert decision.action is SwitchAction.WARN
    assert decision.allowed
    assert decision.violations == 1
    assert "WARNING" in decision.message
    assert "violation #1" in decision.message
    state = working.load_enforcement()
    assert state.project == "harm"
    assert state.violations == 1


def test_block_mode_denies_and_counts_each_attempt(working, settings) -> None:
    settings.update(block_project_switch=True)
    guard = _guard(working, settings)

    for expected in (1, 2, 3):
        decision = guard.check("other-repo")
        assert decision.action is SwitchAction.DENY
        assert not decision.allowed
        assert decision.violations == expected
        assert decision.message.startswith("BLOCKED")
        assert working.load_enforcement().violations == expected


def test_distraction_threshold_adds_tip_in_warn_mode(working, settings) -> None:
    settings.update(distraction_threshold=2)
    guard = _guard(working, settings)

    assert "TOO MANY DISTRACTIONS" not in guard.check("a").message
    message = guard.check("b").message
    assert "TOO MANY DISTRACTIONS" in message
    assert "block_project_switch" in message


def test_distraction_threshold_without_tip_when_blocking(working, settings) -> None:
    settings.update(distraction_threshold=1, block_project_switch=True)
    message = _guard(working, settings).check("a").message
    assert "TOO MANY DISTRACTIONS" in message
    assert "Tip:" not in message


def test_switch_writes_audit_event(working, settings) -> None:
    _guard(working, settings).check("other-repo", current="harm")
    events = working.events.read(event="project_switch")
    assert len(events) == 1
    assert events[0]["action"] == "warn"
    assert events[0]["to_project"] == "other-repo"
    assert events[0]["from_project"] == "harm"
    assert events[0]["bound_project"] == "harm"


def test_decision_serializes(working, settings) -> None:
    payload = _guard(working, settings).check("elsewhere").to_dict()
    assert payload["action"] == "warn"
    assert payload["allowed"] is True
    assert payload["bound_project"] == "harm"
