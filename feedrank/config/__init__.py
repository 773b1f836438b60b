"""Ranking configuration schema and loading."""

from feedrank.config.loader import (
    ConfigValueError,
    RankingConfigLoader,
    load_ranking_config,
)
from feedrank.config.schemas import KindWeights, RankingConfig
from feedrank.config.yaml_store import YamlConfigStore


__all__ = [
    "ConfigValueError",
    "KindWeights",
    "RankingConfig",
    "RankingConfigLoader",
    "YamlConfigStore",
    "load_ranking_config",
]
