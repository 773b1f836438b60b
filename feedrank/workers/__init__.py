"""Ranking workers: full recompute, delta recompute and maintenance."""

from feedrank.workers.delta import (
    DeltaOutcome,
    DeltaRecomputeWorker,
    DeltaStatus,
)
from feedrank.workers.dispatcher import DeltaDispatcher
from feedrank.workers.errors import DeltaRecomputeError, RecomputeStateError
from feedrank.workers.events import RankingEventLogger
from feedrank.workers.normalize import WindowNormalizer
from feedrank.workers.recompute import (
    BATCH_SIZE,
    FullRecomputeWorker,
    RecomputeReport,
)
from feedrank.workers.state_machine import RecomputeState, RecomputeStateMachine
from feedrank.workers.view import ViewRefresher


__all__ = [
    "BATCH_SIZE",
    "DeltaDispatcher",
    "DeltaOutcome",
    "DeltaRecomputeError",
    "DeltaRecomputeWorker",
    "DeltaStatus",
    "FullRecomputeWorker",
    "RankingEventLogger",
    "RecomputeReport",
    "RecomputeState",
    "RecomputeStateError",
    "RecomputeStateMachine",
    "ViewRefresher",
    "WindowNormalizer",
]
