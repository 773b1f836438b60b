"""Full recompute lifecycle state machine."""

from enum import Enum, auto
from typing import ClassVar

import structlog

from feedrank.workers.errors import RecomputeStateError


logger = structlog.get_logger()


class RecomputeState(Enum):
    """Full recompute lifecycle states.

    State transitions:
        STARTED -> LISTING: Config loaded, listing changed items
        LISTING -> SCORING: Items listed, scoring batches
        SCORING -> NORMALIZING: Scores persisted, normalizing the window
        NORMALIZING -> FINISHED_SUCCESS: Normalization written
        SCORING -> FINISHED_SUCCESS: Normalization skipped (dry run, nothing scored)
        LISTING/SCORING -> CANCELLED: Cancel requested at a batch boundary
        any non-terminal -> FINISHED_FAILURE: Fatal error
    """

    STARTED = auto()
    LISTING = auto()
    SCORING = auto()
    NORMALIZING = auto()
    FINISHED_SUCCESS = auto()
    FINISHED_FAILURE = auto()
    CANCELLED = auto()


class RecomputeStateMachine:
    """State machine for one full recompute run of one kind.

    Logs invariant violations when invalid transitions are attempted.
    """

    VALID_TRANSITIONS: ClassVar[dict[RecomputeState, set[RecomputeState]]] = {
        RecomputeState.STARTED: {
            RecomputeState.LISTING,
            RecomputeState.FINISHED_FAILURE,
        },
        RecomputeState.LISTING: {
            RecomputeState.SCORING,
            RecomputeState.CANCELLED,
            RecomputeState.FINISHED_FAILURE,
        },
        RecomputeState.SCORING: {
            RecomputeState.NORMALIZING,
            RecomputeState.FINISHED_SUCCESS,
            RecomputeState.CANCELLED,
            RecomputeState.FINISHED_FAILURE,
        },
        RecomputeState.NORMALIZING: {
            RecomputeState.FINISHED_SUCCESS,
            RecomputeState.FINISHED_FAILURE,
        },
        RecomputeState.FINISHED_SUCCESS: set(),  # Terminal state
        RecomputeState.FINISHED_FAILURE: set(),  # Terminal state
        RecomputeState.CANCELLED: set(),  # Terminal state
    }

    def __init__(self, run_id: str, kind: str) -> None:
        """Initialize the state machine in STARTED state.

        Args:
            run_id: Unique run identifier for logging.
            kind: Item kind being recomputed.
        """
        self._run_id = run_id
        self._state = RecomputeState.STARTED
        self._log = logger.bind(component="workers", run_id=run_id, kind=kind)

    @property
    def state(self) -> RecomputeState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: RecomputeState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: RecomputeState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            RecomputeStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise RecomputeStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "recompute_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if the current state is terminal."""
        return not self.VALID_TRANSITIONS[self._state]
