"""Error types for ranking workers."""

from typing import TYPE_CHECKING

from feedrank.data_model import ItemKind


if TYPE_CHECKING:
    from feedrank.workers.state_machine import RecomputeState


class DeltaRecomputeError(Exception):
    """Raised when a single-item delta recompute fails.

    The underlying exception is always chained as ``__cause__``.
    """

    def __init__(self, kind: ItemKind, item_id: str, message: str) -> None:
        """Initialize the error.

        Args:
            kind: Item kind.
            item_id: Item identifier.
            message: Human-readable error message.
        """
        self.kind = ItemKind(kind)
        self.item_id = item_id
        self.message = message
        super().__init__(
            f"Delta recompute failed for {self.kind.value} {item_id}: {message}"
        )


class RecomputeStateError(Exception):
    """Raised when an invalid recompute state transition is attempted."""

    def __init__(self, from_state: "RecomputeState", to_state: "RecomputeState") -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid recompute state transition: {from_state.name} -> {to_state.name}"
        )
