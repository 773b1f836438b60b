"""Constants for the ranker module."""

import math


LN2: float = math.log(2)

# Below this standard deviation z-scores are meaningless; raw scores pass through
NORMALIZATION_EPSILON: float = 1e-4

# Percentiles reported by ranker metrics
SCORE_PERCENTILES: tuple[int, ...] = (50, 90, 99)

# Most recent raw scores kept for percentiles
SCORE_SAMPLE_SIZE: int = 10_000
