"""Engagement event logging; the entry point for delta recomputes."""

from datetime import UTC, datetime

import structlog

from feedrank.data_model import ItemKind
from feedrank.store import EventType, RankingStore
from feedrank.workers.dispatcher import DeltaDispatcher


logger = structlog.get_logger()


class RankingEventLogger:
    """Records engagement events and schedules the matching delta.

    ``log_event`` never raises, so it is safe to call from the code path
    that handles the user's vote, save or comment.
    """

    def __init__(
        self,
        store: RankingStore,
        dispatcher: DeltaDispatcher | None = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the event logger.

        Args:
            store: Ranking store holding the event log.
            dispatcher: Delta dispatcher (None records events only).
            enabled: When False, events are ignored entirely.
        """
        self._store = store
        self._dispatcher = dispatcher
        self._enabled = enabled
        self._log = logger.bind(component="workers", subcomponent="events")

    @property
    def enabled(self) -> bool:
        """Check whether events are being recorded."""
        return self._enabled

    def log_event(
        self,
        kind: ItemKind | str,
        item_id: str,
        event_type: EventType | str,
        occurred_at: datetime | None = None,
    ) -> bool:
        """Record an engagement event and trigger a delta recompute.

        Args:
            kind: Item kind (legacy aliases accepted).
            item_id: Item identifier.
            event_type: What happened.
            occurred_at: Event time (defaults to now).

        Returns:
            True if the event was recorded.
        """
        if not self._enabled:
            return False

        occurred_at = occurred_at or datetime.now(UTC)
        try:
            kind = ItemKind.parse(kind)
            event_type = EventType(event_type)
        except ValueError as e:
            self._log.warning("ranking_event_rejected", item_id=item_id, error=str(e))
            return False

        recorded = True
        try:
            self._store.record_event(kind, item_id, event_type, occurred_at)
        except Exception:
            recorded = False
            self._log.warning(
                "ranking_event_log_failed",
                kind=kind.value,
                item_id=item_id,
                event_type=event_type.value,
                exc_info=True,
            )

        if self._dispatcher is not None:
            self._dispatcher.submit(kind, item_id, event_at=occurred_at)

        return recorded
