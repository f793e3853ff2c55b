"""
SessionStateHolder tests.
"""

from __future__ import annotations

import pytest

from sessionkeeper.models.auth_models import SessionState
from sessionkeeper.models.enums import AuthPhase
from sessionkeeper.state import SessionStateHolder


def test_update_replaces_snapshot(logger):
    holder = SessionStateHolder(logger)
    before = holder.state

    after = holder.update(phase=AuthPhase.AUTHENTICATING)

    assert before.phase == AuthPhase.SIGNED_OUT
    assert after.phase == AuthPhase.AUTHENTICATING
    assert holder.state is after


def test_snapshots_are_frozen(logger):
    holder = SessionStateHolder(logger)

    with pytest.raises(Exception):
        holder.state.is_authenticated = True


def test_listener_failure_does_not_block_others(logger):
    holder = SessionStateHolder(logger)
    seen: list[SessionState] = []

    def _broken(state: SessionState) -> None:
        raise ValueError("boom")

    holder.subscribe(_broken)
    holder.subscribe(seen.append)
    holder.update(is_registered=True)

    assert len(seen) == 1
    assert seen[0].is_registered is True
    assert holder.state.is_registered is True


def test_unsubscribe_stops_notifications(logger):
    holder = SessionStateHolder(logger)
    seen: list[SessionState] = []

    unsubscribe = holder.subscribe(seen.append)
    holder.update(is_registered=True)
    unsubscribe()
    unsubscribe()
    holder.update(is_registered=False)

    assert len(seen) == 1
