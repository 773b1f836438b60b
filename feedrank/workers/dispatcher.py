"""Fire-and-forget dispatch of delta recomputes."""

import threading
from collections.abc import Callable
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from datetime import datetime

import structlog

from feedrank.data_model import ItemKind
from feedrank.workers.delta import DeltaOutcome, DeltaRecomputeWorker


logger = structlog.get_logger()

DEFAULT_MAX_WORKERS = 4

ErrorCallback = Callable[[ItemKind, str, BaseException], None]


class DeltaDispatcher:
    """Runs delta recomputes in the background.

    ``submit`` never raises: a caller handling a vote or save must not
    fail because ranking did. Failures surface through logs, the
    ``failed_count`` counter and the optional ``on_error`` callback.
    """

    def __init__(
        self,
        worker: DeltaRecomputeWorker,
        max_workers: int = DEFAULT_MAX_WORKERS,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            worker: Delta worker to run.
            max_workers: Background threads.
            on_error: Called with (kind, item_id, exception) on failure.
        """
        self._worker = worker
        self._on_error = on_error
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="delta"
        )
        self._lock = threading.Lock()
        self._closed = False
        self._failed_count = 0
        self._log = logger.bind(component="workers", subcomponent="dispatcher")

    @property
    def failed_count(self) -> int:
        """Number of background deltas that raised."""
        with self._lock:
            return self._failed_count

    def submit(
        self,
        kind: ItemKind,
        item_id: str,
        event_at: datetime | None = None,
    ) -> "Future[DeltaOutcome] | None":
        """Schedule a delta recompute.

        Args:
            kind: Item kind.
            item_id: Item identifier.
            event_at: Time of the triggering event.

        Returns:
            The pending Future, or None if the delta could not be scheduled.
        """
        try:
            kind = ItemKind.parse(kind)
        except ValueError as e:
            self._log.warning("delta_dispatch_rejected", reason=str(e), item_id=item_id)
            return None

        with self._lock:
            if self._closed:
                self._log.warning(
                    "delta_dispatch_rejected",
                    reason="dispatcher_closed",
                    item_id=item_id,
                )
                return None
            try:
                future = self._executor.submit(
                    self._worker.recompute, kind, item_id, event_at
                )
            except RuntimeError as e:
                self._log.warning(
                    "delta_dispatch_rejected", reason=str(e), item_id=item_id
                )
                return None

        future.add_done_callback(
            lambda done: self._handle_done(kind, item_id, done)
        )
        return future

    def _handle_done(
        self, kind: ItemKind, item_id: str, future: "Future[DeltaOutcome]"
    ) -> None:
        try:
            error = future.exception()
        except CancelledError:
            return
        if error is None:
            return

        with self._lock:
            self._failed_count += 1
        self._log.warning(
            "delta_dispatch_failed",
            kind=kind.value,
            item_id=item_id,
            error=str(error),
        )

        if self._on_error is not None:
            try:
                self._on_error(kind, item_id, error)
            except Exception:
                self._log.exception("delta_error_callback_failed", item_id=item_id)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting deltas and release the worker threads.

        Args:
            wait: Block until queued deltas finish.
        """
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "DeltaDispatcher":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.shutdown(wait=True)
