"""Unit tests for the full recompute state machine."""

import pytest

from feedrank.workers import RecomputeState, RecomputeStateError, RecomputeStateMachine


def _machine() -> RecomputeStateMachine:
    return RecomputeStateMachine(run_id="run-1", kind="card")


class TestRecomputeStateMachine:
    """Tests for RecomputeStateMachine."""

    @pytest.mark.unit
    def test_starts_in_started(self) -> None:
        """A new machine is in STARTED and not terminal."""
        machine = _machine()
        assert machine.state == RecomputeState.STARTED
        assert not machine.is_terminal()

    @pytest.mark.unit
    def test_full_happy_path(self) -> None:
        """Listing, scoring and normalizing lead to success."""
        machine = _machine()
        for state in (
            RecomputeState.LISTING,
            RecomputeState.SCORING,
            RecomputeState.NORMALIZING,
            RecomputeState.FINISHED_SUCCESS,
        ):
            machine.transition(state)
        assert machine.state == RecomputeState.FINISHED_SUCCESS
        assert machine.is_terminal()

    @pytest.mark.unit
    def test_success_without_normalizing(self) -> None:
        """Scoring may finish directly when normalization is skipped."""
        machine = _machine()
        machine.transition(RecomputeState.LISTING)
        machine.transition(RecomputeState.SCORING)
        assert machine.can_transition(RecomputeState.FINISHED_SUCCESS)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "path",
        [
            [RecomputeState.SCORING],
            [RecomputeState.LISTING, RecomputeState.NORMALIZING],
            [RecomputeState.LISTING, RecomputeState.FINISHED_SUCCESS],
        ],
    )
    def test_invalid_transitions(self, path: list[RecomputeState]) -> None:
        """Skipping a phase raises RecomputeStateError."""
        machine = _machine()
        *valid, invalid = path
        for state in valid:
            machine.transition(state)
        with pytest.raises(RecomputeStateError) as exc_info:
            machine.transition(invalid)
        assert exc_info.value.to_state == invalid

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "terminal",
        [
            RecomputeState.FINISHED_SUCCESS,
            RecomputeState.FINISHED_FAILURE,
            RecomputeState.CANCELLED,
        ],
    )
    def test_terminal_states_are_final(self, terminal: RecomputeState) -> None:
        """No transition leaves a terminal state."""
        machine = _machine()
        machine.transition(RecomputeState.LISTING)
        machine.transition(RecomputeState.SCORING)
        machine.transition(terminal)

        assert machine.is_terminal()
        for state in RecomputeState:
            assert not machine.can_transition(state)
