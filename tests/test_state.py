"""Tests for the per-service runtime bookkeeping."""

from __future__ import annotations

from typing import List

import pytest

from config.constants import TransitionType
from monitoring.state import ServiceRuntimeState


def _replay(outcomes: List[bool], retry_count: int) -> List[TransitionType]:
    state = ServiceRuntimeState()
    return [state.apply(success, retry_count) for success in outcomes]


# ── Debounce ─────────────────────────────────────────────────────────────────


class TestDebounce:
    def test_initial_state(self) -> None:
        state = ServiceRuntimeState()
        assert state.last_success is None
        assert state.consecutive_failures == 0
        assert state.notified_down is False

    def test_single_episode(self) -> None:
        transitions = _replay([False, False, False, True], retry_count=0)
        assert transitions == [
            TransitionType.DOWN,
            TransitionType.NONE,
            TransitionType.NONE,
            TransitionType.UP,
        ]

    def test_alternating_episodes(self) -> None:
        transitions = _replay([False, True, False, True], retry_count=0)
        assert transitions.count(TransitionType.DOWN) == 2
        assert transitions.count(TransitionType.UP) == 2

    def test_success_without_prior_down_is_silent(self) -> None:
        assert _replay([True, True], retry_count=0) == [TransitionType.NONE, TransitionType.NONE]

    def test_success_resets_counter(self) -> None:
        state = ServiceRuntimeState()
        state.apply(False, 3)
        state.apply(False, 3)
        state.apply(True, 3)
        assert state.consecutive_failures == 0
        assert state.last_success is True


# ── Retry threshold ──────────────────────────────────────────────────────────


class TestRetryThreshold:
    def test_down_fires_when_counter_exceeds_threshold(self) -> None:
        transitions = _replay([False, False, False, False], retry_count=2)
        assert transitions == [
            TransitionType.NONE,
            TransitionType.NONE,
            TransitionType.DOWN,
            TransitionType.NONE,
        ]

    def test_recovery_before_threshold_fires_nothing(self) -> None:
        assert _replay([False, False, True], retry_count=2) == [TransitionType.NONE] * 3

    @pytest.mark.parametrize("retry_count", [0, 1, 5, 10])
    def test_flag_set_exactly_once_per_episode(self, retry_count: int) -> None:
        state = ServiceRuntimeState()
        transitions = [state.apply(False, retry_count) for _ in range(retry_count + 5)]
        assert transitions.count(TransitionType.DOWN) == 1
        assert transitions[retry_count] is TransitionType.DOWN
        assert state.notified_down is True
        assert state.consecutive_failures == retry_count + 5


class TestTransitionType:
    def test_event_names(self) -> None:
        assert TransitionType.DOWN.event_name == "service.down"
        assert TransitionType.UP.event_name == "service.up"
