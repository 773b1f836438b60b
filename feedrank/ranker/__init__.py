"""Scoring, statistics and normalization for ranked items.

This module turns raw engagement counters into comparable relevance
scores: a time-decayed, reputation- and promotion-adjusted raw score per
item, and z-scores against a trailing window of the same kind.
"""

from feedrank.ranker.metrics import RankerMetrics
from feedrank.ranker.models import RankingSignals, ScoreComponents, ScoreStats
from feedrank.ranker.scorer import compute_raw_score, score_components
from feedrank.ranker.stats import compute_stats, normalize_score


__all__ = [
    "RankerMetrics",
    "RankingSignals",
    "ScoreComponents",
    "ScoreStats",
    "compute_raw_score",
    "compute_stats",
    "normalize_score",
    "score_components",
]
