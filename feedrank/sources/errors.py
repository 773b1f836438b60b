"""Error types for external collaborators (signal source, item store)."""

from feedrank.data_model import ItemKind


class SourceError(Exception):
    """Base exception for collaborator failures."""


class SignalFetchError(SourceError):
    """Raised when signals for one item cannot be fetched."""

    def __init__(self, kind: ItemKind, item_id: str, message: str) -> None:
        """Initialize the signal fetch error.

        Args:
            kind: Item kind.
            item_id: Item identifier.
            message: Human-readable error message.
        """
        self.kind = ItemKind(kind)
        self.item_id = item_id
        self.message = message
        super().__init__(f"Signal fetch failed for {self.kind.value} {item_id}: {message}")


class ItemStoreUnavailableError(SourceError):
    """Raised when the item store cannot be reached or read at all."""
