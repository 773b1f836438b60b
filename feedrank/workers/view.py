"""Best-effort refresh of the precomputed ranked view."""

from datetime import datetime

import structlog

from feedrank.store import RankingStore


logger = structlog.get_logger()


class ViewRefresher:
    """Rebuilds the ranked view; failures are logged, never raised."""

    def __init__(self, store: RankingStore) -> None:
        self._store = store
        self._log = logger.bind(component="workers", subcomponent="view")

    def refresh(self, now: datetime | None = None) -> bool:
        """Rebuild the view from the current normalized scores.

        Returns:
            True if the view was rebuilt.
        """
        try:
            rows = self._store.refresh_ranked_view(now)
        except Exception:
            self._log.error("view_refresh_failed", exc_info=True)
            return False

        self._log.info("view_refreshed", rows=rows)
        return True
