"""Ranking configuration schema."""

import hashlib
import json
from typing import Annotated

from pydantic import ConfigDict, Field

from feedrank.config.constants import (
    DEFAULT_ABUSE_PENALTY_FLOOR,
    DEFAULT_CARD_HALF_LIFE_HOURS,
    DEFAULT_CARD_WEIGHTS,
    DEFAULT_COLLECTION_HALF_LIFE_HOURS,
    DEFAULT_COLLECTION_WEIGHTS,
    DEFAULT_CREATOR_QUALITY,
    DEFAULT_NORMALIZATION_WINDOW_DAYS,
    DEFAULT_PROMOTION_MULTIPLIER,
)
from feedrank.data_model import ItemKind, StrictBaseModel


class KindWeights(StrictBaseModel):
    """Engagement weight vector for one item kind.

    Attributes:
        w_u: Weight for log-compressed upvotes.
        w_s: Weight for log-compressed saves.
        w_c: Weight for log-compressed comments.
        w_v: Weight for log-compressed visits.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    w_u: Annotated[float, Field(ge=0.0)]
    w_s: Annotated[float, Field(ge=0.0)]
    w_c: Annotated[float, Field(ge=0.0)]
    w_v: Annotated[float, Field(ge=0.0)]


class RankingConfig(StrictBaseModel):
    """Tunable ranking configuration snapshot.

    Loaded once per invocation and passed explicitly through the call
    chain. Every field has a compiled-in default so a config store with
    no keys at all still yields a complete configuration.

    Attributes:
        card_weights: Weight vector for cards.
        collection_weights: Weight vector for collections.
        card_half_life_hours: Age at which a card's decay factor reaches 0.5.
        collection_half_life_hours: Same, for collections.
        promotion_multiplier: Extra lift applied when an item is promoted.
        normalization_window_days: Trailing window for z-score statistics.
        default_creator_quality: Quality used when a creator has none.
        abuse_penalty_floor: Lowest abuse multiplier ever applied.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    card_weights: KindWeights = Field(
        default_factory=lambda: KindWeights(**DEFAULT_CARD_WEIGHTS)
    )
    collection_weights: KindWeights = Field(
        default_factory=lambda: KindWeights(**DEFAULT_COLLECTION_WEIGHTS)
    )
    card_half_life_hours: Annotated[float, Field(gt=0.0)] = (
        DEFAULT_CARD_HALF_LIFE_HOURS
    )
    collection_half_life_hours: Annotated[float, Field(gt=0.0)] = (
        DEFAULT_COLLECTION_HALF_LIFE_HOURS
    )
    promotion_multiplier: Annotated[float, Field(ge=0.0)] = (
        DEFAULT_PROMOTION_MULTIPLIER
    )
    normalization_window_days: Annotated[float, Field(gt=0.0)] = (
        DEFAULT_NORMALIZATION_WINDOW_DAYS
    )
    default_creator_quality: Annotated[float, Field(ge=0.0, le=100.0)] = (
        DEFAULT_CREATOR_QUALITY
    )
    abuse_penalty_floor: Annotated[float, Field(gt=0.0, le=1.0)] = (
        DEFAULT_ABUSE_PENALTY_FLOOR
    )

    def weights_for(self, kind: ItemKind) -> KindWeights:
        """Get the weight vector for an item kind."""
        if kind == ItemKind.CARD:
            return self.card_weights
        return self.collection_weights

    def half_life_for(self, kind: ItemKind) -> float:
        """Get the decay half-life in hours for an item kind."""
        if kind == ItemKind.CARD:
            return self.card_half_life_hours
        return self.collection_half_life_hours

    def to_normalized_json(self) -> str:
        """Convert to normalized JSON with stable ordering.

        Returns:
            JSON string with sorted keys.
        """
        data = self.model_dump(mode="json")
        return json.dumps(data, sort_keys=True, separators=(",", ":"))

    def compute_checksum(self) -> str:
        """Compute SHA-256 checksum of normalized configuration.

        Returns:
            Hex-encoded SHA-256 checksum.
        """
        normalized = self.to_normalized_json()
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
