"""Operator CLI for the ranking engine."""

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
import structlog

from feedrank import __version__
from feedrank.config import RankingConfigLoader, YamlConfigStore
from feedrank.config.constants import ALL_KEYS, COMPONENT_CLI
from feedrank.data_model import ItemKind
from feedrank.observability import configure_logging, log_context
from feedrank.ranker import RankerMetrics
from feedrank.service import RankingService
from feedrank.settings import AppSettings, get_settings
from feedrank.sources import ItemStoreUnavailableError, SnapshotCatalog
from feedrank.sources.protocols import ConfigStore
from feedrank.store import RankingStore, StoreMetrics
from feedrank.workers import DeltaRecomputeError, ViewRefresher, WindowNormalizer


logger = structlog.get_logger()

KIND_CHOICES = ["card", "collection", "stack"]
FEED_KIND_CHOICES = [*KIND_CHOICES, "both"]


@dataclass
class CliContext:
    """Resolved global options shared by every command."""

    settings: AppSettings
    db_path: Path
    catalog_path: Path | None
    config_path: Path | None

    def open_store(self) -> RankingStore:
        """Create a ranking store for the configured database."""
        return RankingStore(db_path=self.db_path)

    def config_store(self, store: RankingStore) -> ConfigStore:
        """YAML file when one was given, else the database config table."""
        if self.config_path is not None:
            return YamlConfigStore(self.config_path)
        return store

    def load_catalog(self) -> SnapshotCatalog:
        """Load the item catalog, exiting when it is missing or unreadable."""
        if self.catalog_path is None:
            click.echo(
                "Error: this command needs --catalog (or FEEDRANK_CATALOG_PATH)",
                err=True,
            )
            sys.exit(1)
        try:
            return SnapshotCatalog.from_path(self.catalog_path)
        except ItemStoreUnavailableError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    def open_service(self, store: RankingStore) -> RankingService:
        """Create a service over the store and the catalog."""
        catalog = self.load_catalog()
        return RankingService(
            store,
            catalog,
            catalog,
            config_store=self.config_store(store),
            settings=self.settings,
        )


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def _parse_config_value(raw: str) -> Any:
    """Parse a CLI value as JSON, falling back to the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to SQLite ranking database (default: FEEDRANK_DB_PATH).",
)
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to JSON item catalog snapshot.",
)
@click.option(
    "--config-file",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="YAML ranking config; overrides the database config table.",
)
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Log format (default: FEEDRANK_LOG_JSON).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
@click.pass_context
def cli(  # noqa: PLR0913
    ctx: click.Context,
    db_path: Path | None,
    catalog_path: Path | None,
    config_path: Path | None,
    json_logs: bool | None,
    verbose: bool,
) -> None:
    """Feed ranking engine CLI."""
    settings = get_settings()

    if verbose:
        level = logging.DEBUG
    else:
        level = logging.getLevelNamesMapping().get(
            settings.log_level.upper(), logging.INFO
        )
    configure_logging(
        level=level,
        json_format=settings.log_json if json_logs is None else json_logs,
    )

    ctx.obj = CliContext(
        settings=settings,
        db_path=db_path or settings.db_path,
        catalog_path=catalog_path or settings.catalog_path,
        config_path=config_path or settings.config_path,
    )


@cli.command()
@click.option(
    "--kind",
    type=click.Choice(FEED_KIND_CHOICES, case_sensitive=False),
    default="both",
    help="Kind to recompute (default: both, cards first).",
)
@click.option(
    "--changed-since-days",
    type=click.FloatRange(min=0),
    default=30,
    help="Only items created or changed within this many days (default: 30).",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Compute scores without writing anything.",
)
@click.pass_obj
def recompute(
    obj: CliContext, kind: str, changed_since_days: float, dry_run: bool
) -> None:
    """Run a full recompute and refresh the ranked view."""
    log = logger.bind(component=COMPONENT_CLI, command="recompute", dry_run=dry_run)
    log.info("cli_recompute_started", kind=kind)

    with (
        log_context(command="recompute"),
        obj.open_store() as store,
        obj.open_service(store) as service,
    ):
        report = service.trigger_full_recompute(
            kind=kind,
            changed_since_days=changed_since_days,
            dry_run=dry_run,
        )

    _echo_json(report.model_dump(mode="json"))
    if report.has_fatal_error:
        sys.exit(1)


@cli.command()
@click.option(
    "--kind",
    type=click.Choice(KIND_CHOICES, case_sensitive=False),
    required=True,
    help="Kind to normalize.",
)
@click.pass_obj
def normalize(obj: CliContext, kind: str) -> None:
    """Run only the normalization pass for one kind."""
    item_kind = ItemKind.parse(kind)
    loader = RankingConfigLoader()

    with obj.open_store() as store:
        config = loader.load(obj.config_store(store))
        stats = WindowNormalizer(store).normalize(item_kind, config)

    if stats is None:
        _echo_json({"kind": item_kind.value, "normalized": False})
        return
    _echo_json(
        {
            "kind": item_kind.value,
            "normalized": True,
            "stats": stats.model_dump(mode="json"),
        }
    )


@cli.command()
@click.argument("kind", type=click.Choice(KIND_CHOICES, case_sensitive=False))
@click.argument("item_id")
@click.option(
    "--debounce-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Override the debounce window (default: FEEDRANK_DEBOUNCE_SECONDS).",
)
@click.pass_obj
def delta(
    obj: CliContext, kind: str, item_id: str, debounce_seconds: float | None
) -> None:
    """Recompute one item's raw score."""
    with obj.open_store() as store, obj.open_service(store) as service:
        try:
            outcome = service.recompute_delta_now(
                kind, item_id, debounce_seconds=debounce_seconds
            )
        except DeltaRecomputeError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    _echo_json(
        {
            "kind": outcome.kind.value,
            "item_id": outcome.item_id,
            "status": outcome.status.value,
            "raw_score": outcome.raw_score,
        }
    )


@cli.command()
@click.option(
    "--kind",
    type=click.Choice(FEED_KIND_CHOICES, case_sensitive=False),
    default="both",
    help="Restrict the feed to one kind (default: both).",
)
@click.option("--card-ratio", type=float, default=0.5, help="Card share (default 0.5).")
@click.option(
    "--collection-ratio",
    type=float,
    default=0.5,
    help="Collection share (default 0.5).",
)
@click.option("--limit", type=click.IntRange(min=0), default=50, help="Page size.")
@click.option("--offset", type=click.IntRange(min=0), default=0, help="Entries to skip.")
@click.pass_obj
def feed(  # noqa: PLR0913
    obj: CliContext,
    kind: str,
    card_ratio: float,
    collection_ratio: float,
    limit: int,
    offset: int,
) -> None:
    """Print a composed feed page."""
    with obj.open_store() as store, obj.open_service(store) as service:
        try:
            page = service.get_feed(
                kind_filter=kind,
                mix_ratios={
                    ItemKind.CARD: card_ratio,
                    ItemKind.COLLECTION: collection_ratio,
                },
                limit=limit,
                offset=offset,
            )
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    _echo_json(page.model_dump(mode="json"))


@cli.command("refresh-view")
@click.pass_obj
def refresh_view(obj: CliContext) -> None:
    """Rebuild the precomputed ranked view."""
    with obj.open_store() as store:
        refreshed = ViewRefresher(store).refresh()
        rows = store.get_table_counts()["ranked_view"] if refreshed else 0

    _echo_json({"refreshed": refreshed, "rows": rows})
    if not refreshed:
        sys.exit(1)


@cli.command()
@click.option(
    "--kind",
    type=click.Choice(KIND_CHOICES, case_sensitive=False),
    default=None,
    help="Restrict to one kind.",
)
@click.option("--limit", type=click.IntRange(min=0), default=50, help="Page size.")
@click.option("--offset", type=click.IntRange(min=0), default=0, help="Rows to skip.")
@click.pass_obj
def browse(obj: CliContext, kind: str | None, limit: int, offset: int) -> None:
    """Page through the precomputed ranked view."""
    item_kind = ItemKind.parse(kind) if kind else None
    with obj.open_store() as store:
        entries = store.list_ranked_view(item_kind, limit=limit, offset=offset)

    _echo_json([entry.model_dump(mode="json") for entry in entries])


@cli.command()
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=10,
    help="Rows per section (default: 10).",
)
@click.pass_obj
def stats(obj: CliContext, limit: int) -> None:
    """Show normalization history, top items and table counts."""
    with obj.open_store() as store:
        output = {
            "schema_version": store.get_schema_version(),
            "tables": store.get_table_counts(),
            "recent_stats": [
                row.model_dump(mode="json") for row in store.list_recent_stats(limit=limit)
            ],
            "top_scores": [
                row.model_dump(mode="json") for row in store.list_top_scores(limit=limit)
            ],
            "metrics": {
                "ranker": RankerMetrics.get_instance().to_dict(),
                "store": StoreMetrics.get_instance().to_dict(),
            },
        }

    _echo_json(output)


@cli.group()
def config() -> None:
    """Inspect and tune the ranking configuration."""


@config.command("show")
@click.pass_obj
def config_show(obj: CliContext) -> None:
    """Show the effective ranking configuration."""
    loader = RankingConfigLoader()
    with obj.open_store() as store:
        effective = loader.load(obj.config_store(store))
        stored = store.list_config() if obj.config_path is None else {}

    _echo_json(
        {
            "source": (
                f"yaml:{obj.config_path}" if obj.config_path is not None else "sqlite"
            ),
            "checksum": effective.compute_checksum(),
            "invalid_keys": loader.invalid_keys,
            "stored": stored,
            "config": effective.model_dump(mode="json"),
        }
    )


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(obj: CliContext, key: str, value: str) -> None:
    """Write a ranking config key into the database.

    VALUE is parsed as JSON, falling back to the raw string.
    """
    if key not in ALL_KEYS:
        click.echo(
            f"Error: unknown config key '{key}'. Known keys: {', '.join(ALL_KEYS)}",
            err=True,
        )
        sys.exit(1)

    loader = RankingConfigLoader()
    with obj.open_store() as store:
        store.set_config_value(key, _parse_config_value(value))
        loader.load(store)

    if key in loader.invalid_keys:
        click.echo(
            f"Warning: '{key}' was stored but is invalid; the default applies.",
            err=True,
        )
    click.echo(f"Set {key}")


if __name__ == "__main__":
    cli()
