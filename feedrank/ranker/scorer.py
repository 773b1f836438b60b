"""Scoring function for cards and collections.

Scoring formula:
    raw = base * creator_factor * promotion_factor * age_decay * abuse_factor

Where:
    - base: w_u*ln(1+U) + w_s*ln(1+S) + w_c*ln(1+C) + w_v*ln(1+V)
    - age_decay: exp(-ln(2) / half_life_hours * age_hours)
    - creator_factor: 1 + creator_quality / 100
    - promotion_factor: 1 + promotion_multiplier if promoted, else 1
    - abuse_factor: max(abuse_factor, abuse_penalty_floor)

The function is pure: no I/O, no clock, no logging.
"""

import math

from feedrank.config.schemas import RankingConfig
from feedrank.data_model import ItemKind
from feedrank.ranker.constants import LN2
from feedrank.ranker.models import RankingSignals, ScoreComponents


def _base_engagement(
    kind: ItemKind, signals: RankingSignals, config: RankingConfig
) -> float:
    """Weighted sum of log-compressed engagement counts."""
    weights = config.weights_for(kind)
    return (
        weights.w_u * math.log1p(signals.upvotes_count)
        + weights.w_s * math.log1p(signals.saves_count)
        + weights.w_c * math.log1p(signals.comments_count)
        + weights.w_v * math.log1p(signals.visits_count)
    )


def _age_decay(kind: ItemKind, age_hours: float, config: RankingConfig) -> float:
    """Exponential decay factor; strictly positive for finite ages."""
    decay_rate = LN2 / config.half_life_for(kind)
    return math.exp(-decay_rate * max(age_hours, 0.0))


def score_components(
    kind: ItemKind,
    signals: RankingSignals,
    config: RankingConfig | None = None,
) -> ScoreComponents:
    """Compute the score breakdown for one item.

    Args:
        kind: Item kind, selects weights and half-life.
        signals: Current engagement signals.
        config: Ranking configuration (defaults when None).

    Returns:
        ScoreComponents with every factor and the raw score.
    """
    config = config or RankingConfig()

    base = _base_engagement(kind, signals, config)
    age_decay = _age_decay(kind, signals.age_hours, config)

    quality = signals.creator_quality
    if quality is None:
        quality = config.default_creator_quality
    creator_factor = 1.0 + quality / 100.0

    # Presence of a boost matters, not its magnitude
    promotion_factor = 1.0 + (
        config.promotion_multiplier if signals.promotion_boost > 0 else 0.0
    )

    abuse_factor = max(signals.abuse_factor, config.abuse_penalty_floor)

    raw_score = base * creator_factor * promotion_factor * age_decay * abuse_factor

    return ScoreComponents(
        base=base,
        age_decay=age_decay,
        creator_factor=creator_factor,
        promotion_factor=promotion_factor,
        abuse_factor=abuse_factor,
        raw_score=raw_score,
    )


def compute_raw_score(
    kind: ItemKind,
    signals: RankingSignals,
    config: RankingConfig | None = None,
) -> float:
    """Compute the raw relevance score for one item.

    Args:
        kind: Item kind, selects weights and half-life.
        signals: Current engagement signals.
        config: Ranking configuration (defaults when None).

    Returns:
        Non-negative raw score; 0.0 when all engagement counts are zero.
    """
    return score_components(kind, signals, config).raw_score
