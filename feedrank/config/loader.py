"""Ranking configuration loader with per-key fallback to defaults."""

import json
import time
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from feedrank.config.constants import (
    ALL_KEYS,
    COMPONENT_CONFIG,
    KEY_CARD_WEIGHTS,
    WEIGHT_KEYS,
)
from feedrank.config.schemas import RankingConfig


if TYPE_CHECKING:
    from feedrank.sources.protocols import ConfigStore

logger = structlog.get_logger()


class ConfigValueError(ValueError):
    """Raised when a single config value cannot be parsed."""

    def __init__(self, key: str, value: Any, reason: str) -> None:
        """Initialize the error.

        Args:
            key: Config key that failed.
            value: The raw value read from the store.
            reason: Human-readable reason.
        """
        self.key = key
        self.value = value
        super().__init__(f"Invalid value for {key}: {reason}")


class RankingConfigLoader:
    """Loads a RankingConfig snapshot from a config store.

    Each key is read, parsed and validated on its own. A missing key, a
    store failure, or a malformed value only affects that key, which
    falls back to its compiled-in default. ``load`` never raises.
    """

    def __init__(self, run_id: str | None = None) -> None:
        """Initialize the loader.

        Args:
            run_id: Optional run identifier for logging.
        """
        self._defaults = RankingConfig()
        self._invalid_keys: list[str] = []
        self._log = logger.bind(component=COMPONENT_CONFIG, run_id=run_id)

    @property
    def invalid_keys(self) -> list[str]:
        """Keys that were present but rejected during the last load."""
        return self._invalid_keys.copy()

    def load(self, store: "ConfigStore | None") -> RankingConfig:
        """Load configuration, falling back to defaults per key.

        Args:
            store: Config store to read from. None yields defaults.

        Returns:
            A complete, validated RankingConfig.
        """
        self._invalid_keys = []
        if store is None:
            self._log.debug("config_store_absent_using_defaults")
            return self._defaults

        start_time = time.perf_counter()
        overrides: dict[str, Any] = {}

        for key in ALL_KEYS:
            value = self._read_key(store, key)
            if value is None:
                continue
            try:
                overrides[key] = self._validate_key(key, value)
            except (ConfigValueError, ValidationError, TypeError, ValueError) as e:
                self._invalid_keys.append(key)
                self._log.warning(
                    "config_key_invalid",
                    key=key,
                    error=str(e),
                )

        try:
            config = self._defaults.model_copy(update=overrides)
            config = RankingConfig.model_validate(config.model_dump())
        except ValidationError as e:
            self._log.error("config_merge_failed", error=str(e))
            config = self._defaults

        self._log.info(
            "config_loaded",
            overridden_keys=sorted(overrides),
            invalid_keys=self._invalid_keys,
            checksum=config.compute_checksum(),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return config

    def _read_key(self, store: "ConfigStore", key: str) -> Any:
        """Read one raw value, treating any store failure as absence.

        Args:
            store: Config store.
            key: Key to read.

        Returns:
            Raw value, or None when absent or unreadable.
        """
        try:
            return store.get_config_value(key)
        except Exception as e:  # noqa: BLE001
            self._invalid_keys.append(key)
            self._log.warning(
                "config_key_read_failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    def _validate_key(self, key: str, value: Any) -> Any:
        """Parse and validate a single key against the schema.

        Args:
            key: Config key.
            value: Raw value from the store.

        Returns:
            Parsed value ready to merge into the config.

        Raises:
            ConfigValueError: If the value has the wrong shape.
            ValidationError: If the value violates schema bounds.
        """
        if key in WEIGHT_KEYS:
            parsed: Any = self._parse_weights(key, value)
        else:
            parsed = self._parse_number(key, value)

        # Validate this key in isolation so one bad key never taints another
        candidate = self._defaults.model_dump()
        candidate[key] = parsed
        validated = RankingConfig.model_validate(candidate)
        return getattr(validated, key)

    def _parse_weights(self, key: str, value: Any) -> dict[str, Any]:
        """Parse a weight vector, merging partial vectors over defaults."""
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise ConfigValueError(key, value, f"not valid JSON ({e})") from e
        if not isinstance(value, dict):
            raise ConfigValueError(key, value, "expected a mapping of weights")

        if key == KEY_CARD_WEIGHTS:
            base = self._defaults.card_weights.model_dump()
        else:
            base = self._defaults.collection_weights.model_dump()
        return {**base, **value}

    @staticmethod
    def _parse_number(key: str, value: Any) -> float:
        """Parse a scalar number from a number or numeric string."""
        if isinstance(value, bool):
            raise ConfigValueError(key, value, "expected a number, got a boolean")
        if isinstance(value, int | float):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError as e:
                raise ConfigValueError(key, value, "not a number") from e
        raise ConfigValueError(key, value, f"unsupported type {type(value).__name__}")


def load_ranking_config(
    store: "ConfigStore | None", run_id: str | None = None
) -> RankingConfig:
    """Pure function API for loading ranking configuration.

    Args:
        store: Config store to read from.
        run_id: Optional run identifier for logging.

    Returns:
        A complete RankingConfig.
    """
    return RankingConfigLoader(run_id=run_id).load(store)
