"""Window statistics and z-score normalization."""

import math
from collections.abc import Sequence

from feedrank.ranker.constants import NORMALIZATION_EPSILON
from feedrank.ranker.models import ScoreStats


def compute_stats(raw_scores: Sequence[float]) -> ScoreStats:
    """Compute mean and population standard deviation.

    Args:
        raw_scores: Raw scores of one kind's normalization window.

    Returns:
        ScoreStats; (0, 0) for empty input, (value, 0) for a single score.
    """
    count = len(raw_scores)
    if count == 0:
        return ScoreStats(mean=0.0, stddev=0.0, count=0)

    mean = math.fsum(raw_scores) / count
    variance = math.fsum((score - mean) ** 2 for score in raw_scores) / count
    return ScoreStats(mean=mean, stddev=math.sqrt(variance), count=count)


def normalize_score(raw_score: float, mean: float, stddev: float) -> float:
    """Express a raw score as a z-score against its window.

    Args:
        raw_score: Score to normalize.
        mean: Window mean.
        stddev: Window population standard deviation.

    Returns:
        ``(raw_score - mean) / stddev``, or ``raw_score`` unchanged when the
        window has (near) zero variance.
    """
    if stddev < NORMALIZATION_EPSILON:
        return raw_score
    return (raw_score - mean) / stddev
