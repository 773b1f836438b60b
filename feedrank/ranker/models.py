"""Data models for ranking signals and score breakdowns."""

from dataclasses import dataclass
from typing import Annotated

from pydantic import ConfigDict, Field

from feedrank.data_model import StrictBaseModel


class RankingSignals(StrictBaseModel):
    """Engagement signals for one item, fetched on demand.

    Never persisted. Counts are non-negative; ``creator_quality`` may be
    None when the creator has no reputation yet, in which case the
    configured default quality applies.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    upvotes_count: Annotated[int, Field(ge=0)] = 0
    saves_count: Annotated[int, Field(ge=0)] = 0
    comments_count: Annotated[int, Field(ge=0)] = 0
    visits_count: Annotated[int, Field(ge=0)] = 0
    age_hours: Annotated[float, Field(ge=0.0, description="Hours since creation")] = (
        0.0
    )
    creator_quality: Annotated[
        float | None, Field(ge=0.0, le=100.0, description="0-100 reputation proxy")
    ] = None
    promotion_boost: Annotated[
        float, Field(ge=0.0, description="Editorial boost, 0 = not promoted")
    ] = 0.0
    abuse_factor: Annotated[
        float, Field(ge=0.0, le=1.0, description="Penalty multiplier, 1 = none")
    ] = 1.0


@dataclass(frozen=True)
class ScoreComponents:
    """Breakdown of a raw score into its multiplicative factors.

    Attributes:
        base: Weighted sum of log-compressed engagement counts.
        age_decay: Exponential half-life decay factor in (0, 1].
        creator_factor: 1 + creator_quality / 100.
        promotion_factor: 1 + promotion_multiplier when promoted, else 1.
        abuse_factor: Abuse multiplier after clamping to the floor.
        raw_score: Product of all factors.
    """

    base: float
    age_decay: float
    creator_factor: float
    promotion_factor: float
    abuse_factor: float
    raw_score: float

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization.

        Returns:
            Dictionary of component name to value.
        """
        return {
            "base": self.base,
            "age_decay": self.age_decay,
            "creator_factor": self.creator_factor,
            "promotion_factor": self.promotion_factor,
            "abuse_factor": self.abuse_factor,
            "raw_score": self.raw_score,
        }


@dataclass(frozen=True)
class ScoreStats:
    """Mean and population standard deviation of a set of raw scores."""

    mean: float
    stddev: float
    count: int = 0
