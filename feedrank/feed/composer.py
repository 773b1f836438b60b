"""Feed composition across item kinds."""

import math
import time
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor

import structlog

from feedrank.data_model import ItemKind
from feedrank.feed.dedup import dedupe_cards
from feedrank.feed.models import FeedEntry, FeedPage
from feedrank.feed.ordering import sort_entries
from feedrank.ranker import RankerMetrics
from feedrank.sources.protocols import ItemStore
from feedrank.store import RankingStore


logger = structlog.get_logger()

DEFAULT_FEED_LIMIT = 50
DEFAULT_KIND_TIMEOUT_SECONDS = 2.0
DEFAULT_MIX_RATIOS: dict[ItemKind, float] = {
    ItemKind.CARD: 0.5,
    ItemKind.COLLECTION: 0.5,
}
ALL_KINDS: tuple[ItemKind, ...] = (ItemKind.CARD, ItemKind.COLLECTION)

KindFilter = ItemKind | str | None


def resolve_kinds(kind_filter: KindFilter) -> tuple[ItemKind, ...]:
    """Resolve a kind filter to the kinds in scope.

    Args:
        kind_filter: None or "both" for every kind, else one kind name.

    Returns:
        Kinds in scope, cards first.

    Raises:
        ValueError: If the filter names an unknown kind.
    """
    if kind_filter is None:
        return ALL_KINDS
    if isinstance(kind_filter, str) and kind_filter.strip().lower() == "both":
        return ALL_KINDS
    return (ItemKind.parse(kind_filter),)


def allocate_counts(
    kinds: tuple[ItemKind, ...],
    mix_ratios: Mapping[ItemKind | str, float] | None,
    total: int,
) -> dict[ItemKind, int]:
    """Split ``total`` slots across kinds by mix ratio.

    Ratios are normalized over the kinds in scope (all-zero ratios split
    evenly) and rounded with the largest-remainder rule, so the counts
    always sum to ``total``. Remainder ties go to the earlier kind.

    Args:
        kinds: Kinds in scope.
        mix_ratios: Weight per kind (missing kinds weigh 0).
        total: Slots to split.

    Returns:
        Slot count per kind.

    Raises:
        ValueError: If a ratio is negative or not finite.
    """
    if len(kinds) == 1:
        return {kinds[0]: total}

    ratios: dict[ItemKind, float] = {kind: 0.0 for kind in kinds}
    source = DEFAULT_MIX_RATIOS if mix_ratios is None else mix_ratios
    for key, ratio in source.items():
        kind = ItemKind.parse(key)
        if not math.isfinite(ratio) or ratio < 0:
            msg = f"Mix ratio for {kind.value} must be a finite number >= 0, got {ratio}"
            raise ValueError(msg)
        if kind in ratios:
            ratios[kind] = float(ratio)

    ratio_sum = sum(ratios.values())
    if ratio_sum <= 0:
        ratios = {kind: 1.0 for kind in kinds}
        ratio_sum = float(len(kinds))

    quotas = {kind: total * ratios[kind] / ratio_sum for kind in kinds}
    counts = {kind: math.floor(quotas[kind]) for kind in kinds}
    leftover = total - sum(counts.values())

    by_remainder = sorted(
        kinds,
        key=lambda kind: (-(quotas[kind] - counts[kind]), kinds.index(kind)),
    )
    for kind in by_remainder[:leftover]:
        counts[kind] += 1

    return counts


class FeedComposer:
    """Composes a mixed, deduplicated feed of cards and collections.

    Each kind is fetched on its own thread with a timeout, ranked by
    normalized score, and falls back to recency when no ranking exists
    yet. Ranking-store read errors also fall back to recency; item-store
    errors propagate.
    """

    def __init__(
        self,
        store: RankingStore,
        item_store: ItemStore,
        kind_timeout_seconds: float = DEFAULT_KIND_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the composer.

        Args:
            store: Ranking store to read normalized scores from.
            item_store: Item store for fallback listing and hydration.
            kind_timeout_seconds: Per-kind fetch timeout.
        """
        self._store = store
        self._item_store = item_store
        self._kind_timeout_seconds = kind_timeout_seconds
        self._metrics = RankerMetrics.get_instance()
        self._log = logger.bind(component="feed")

    def compose(
        self,
        kind_filter: KindFilter = None,
        mix_ratios: Mapping[ItemKind | str, float] | None = None,
        limit: int = DEFAULT_FEED_LIMIT,
        offset: int = 0,
    ) -> FeedPage:
        """Compose one page of the feed.

        Args:
            kind_filter: None/"both" for a mixed feed, else one kind.
            mix_ratios: Target share per kind (default 50/50).
            limit: Page size.
            offset: Entries to skip.

        Returns:
            FeedPage with the page and the pre-paging total.

        Raises:
            ValueError: For a negative limit/offset, negative ratio or
                unknown kind.
        """
        if limit < 0 or offset < 0:
            msg = f"limit and offset must be >= 0, got limit={limit} offset={offset}"
            raise ValueError(msg)

        start_time = time.perf_counter()
        kinds = resolve_kinds(kind_filter)
        counts = allocate_counts(kinds, mix_ratios, offset + limit)
        self._metrics.record_feed_request()

        entries: list[FeedEntry] = []
        degraded: list[ItemKind] = []
        fallback: list[ItemKind] = []

        wanted = [kind for kind in kinds if counts[kind] > 0]
        if wanted:
            executor = ThreadPoolExecutor(
                max_workers=len(wanted), thread_name_prefix="feed"
            )
            try:
                futures: dict[ItemKind, Future[tuple[list[FeedEntry], bool]]] = {
                    kind: executor.submit(self._fetch_kind, kind, counts[kind])
                    for kind in wanted
                }
                deadline = time.monotonic() + self._kind_timeout_seconds
                for kind, future in futures.items():
                    remaining = max(deadline - time.monotonic(), 0.0)
                    try:
                        kind_entries, used_fallback = future.result(timeout=remaining)
                    except TimeoutError:
                        future.cancel()
                        degraded.append(kind)
                        self._metrics.record_feed_timeout(kind.value)
                        self._log.warning(
                            "feed_kind_timeout",
                            kind=kind.value,
                            timeout_seconds=self._kind_timeout_seconds,
                        )
                        continue
                    entries.extend(kind_entries)
                    if used_fallback:
                        fallback.append(kind)
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        merged = sort_entries(entries)
        deduped = sort_entries(dedupe_cards(merged))
        page = deduped[offset : offset + limit]

        self._log.info(
            "feed_composed",
            kinds=[kind.value for kind in kinds],
            allocation={kind.value: count for kind, count in counts.items()},
            candidates=len(entries),
            total=len(deduped),
            returned=len(page),
            degraded_kinds=[kind.value for kind in degraded],
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

        return FeedPage(
            feed=tuple(page),
            total=len(deduped),
            degraded_kinds=tuple(degraded),
            fallback_kinds=tuple(fallback),
        )

    def _fetch_kind(self, kind: ItemKind, count: int) -> tuple[list[FeedEntry], bool]:
        """Fetch and hydrate the top ``count`` entries of one kind.

        Returns:
            Entries and whether the recency fallback served them.
        """
        try:
            rows = self._store.top_ranked(kind, count)
        except Exception as e:  # noqa: BLE001
            self._log.warning(
                "feed_ranking_read_failed",
                kind=kind.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            rows = []

        if rows:
            items = {
                item.id: item
                for item in self._item_store.hydrate(kind, [row.item_id for row in rows])
            }
            entries = [
                FeedEntry(
                    kind=kind,
                    item_id=row.item_id,
                    score=row.norm_score if row.norm_score is not None else 0.0,
                    last_event_at=row.last_event_at,
                    item=items[row.item_id],
                    attributions=items[row.item_id].attributions,
                )
                for row in rows
                if row.item_id in items
            ]
            return entries, False

        self._metrics.record_feed_fallback(kind.value)
        self._log.info("feed_fallback_recency", kind=kind.value, count=count)

        recent_ids = self._item_store.list_recent_visible(kind, count)
        entries = [
            FeedEntry(
                kind=kind,
                item_id=item.id,
                score=0.0,
                ranked=False,
                item=item,
                attributions=item.attributions,
            )
            for item in self._item_store.hydrate(kind, recent_ids)
        ]
        return entries, True
