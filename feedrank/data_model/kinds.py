"""Item kinds ranked by the engine."""

from enum import Enum


# Older clients still send the pre-rename name for collections
LEGACY_KIND_ALIASES: dict[str, str] = {"stack": "collection"}


class ItemKind(str, Enum):
    """Kind of rankable item.

    - CARD: A single saved resource (link, image, document)
    - COLLECTION: A curated, ordered group of cards
    """

    CARD = "card"
    COLLECTION = "collection"

    @classmethod
    def parse(cls, value: "str | ItemKind") -> "ItemKind":
        """Parse a kind from user or wire input.

        Args:
            value: Kind name (case-insensitive, legacy aliases accepted).

        Returns:
            The matching ItemKind.

        Raises:
            ValueError: If the value is not a known kind.
        """
        if isinstance(value, ItemKind):
            return value
        normalized = value.strip().lower()
        normalized = LEGACY_KIND_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            msg = f"Invalid item kind: {value!r}. Must be 'card' or 'collection'"
            raise ValueError(msg) from None
