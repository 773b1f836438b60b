"""Read-only config store backed by a YAML mapping file."""

from pathlib import Path
from typing import Any

import structlog
import yaml

from feedrank.config.constants import COMPONENT_CONFIG


logger = structlog.get_logger()


class YamlConfigStore:
    """Config store that serves keys from a YAML file.

    The file is a flat mapping of config keys to values, e.g.::

        card_half_life_hours: 36
        card_weights: {w_u: 1.2, w_s: 2.0}

    A missing or unparsable file behaves as an empty store, so the
    loader falls back to defaults for every key.
    """

    def __init__(self, path: Path | str) -> None:
        """Initialize the store.

        Args:
            path: Path to the YAML file.
        """
        self._path = Path(path)
        self._log = logger.bind(component=COMPONENT_CONFIG, config_path=str(path))
        self._values = self._load()

    @property
    def path(self) -> Path:
        """Get the YAML file path."""
        return self._path

    def _load(self) -> dict[str, Any]:
        """Load and parse the YAML file.

        Returns:
            Parsed mapping, empty if the file is absent or invalid.
        """
        try:
            parsed = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            self._log.warning("config_file_not_found")
            return {}
        except (OSError, yaml.YAMLError) as e:
            self._log.warning("config_file_unreadable", error=str(e))
            return {}

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            self._log.warning(
                "config_file_not_mapping", parsed_type=type(parsed).__name__
            )
            return {}
        return parsed

    def get_config_value(self, key: str) -> Any:
        """Get a config value.

        Args:
            key: Config key.

        Returns:
            The value, or None if absent.
        """
        return self._values.get(key)
