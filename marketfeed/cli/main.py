"""CLI commands for the marketfeed service."""

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

import click
import structlog
import yaml

from marketfeed import __version__
from marketfeed.app import Application, build_application
from marketfeed.errors import ConfigurationError, FeedError
from marketfeed.ingestion.connectors import StaticConnector
from marketfeed.observability.logging import configure_logging
from marketfeed.rebuild.models import OutcomeStatus
from marketfeed.settings import AppSettings


logger = structlog.get_logger()

# Seconds to wait for triggered rebuilds before giving up on --wait.
DEFAULT_WAIT_SECONDS = 600.0


@dataclass
class CliOptions:
    """Options shared by every command."""

    config_path: Path | None
    db_path: Path | None
    redis_url: str | None
    json_logs: bool | None
    verbose: bool


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _fail_configuration(error: ConfigurationError) -> NoReturn:
    click.echo(f"Configuration validation failed ({error.source}):", err=True)
    for detail in error.errors:
        click.echo(f"  - {detail['loc']}: {detail['msg']}", err=True)
    sys.exit(1)


def _build(options: CliOptions) -> Application:
    """Configure logging and wire the application from CLI options."""
    settings = AppSettings()
    updates: dict[str, Any] = {}
    if options.db_path is not None:
        updates["db_path"] = str(options.db_path)
    if options.redis_url is not None:
        updates["redis_url"] = options.redis_url
    if updates:
        settings = settings.model_copy(update=updates)

    level = (
        logging.DEBUG
        if options.verbose
        else logging.getLevelName(settings.log_level.upper())
    )
    if not isinstance(level, int):
        level = logging.INFO
    json_format = settings.log_json if options.json_logs is None else options.json_logs
    configure_logging(level=level, json_format=json_format)

    try:
        return build_application(settings, options.config_path)
    except ConfigurationError as e:
        _fail_configuration(e)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to ranking.yaml (default: RANKING_CONFIG_PATH or built-ins).",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to the SQLite item store (default: MARKETFEED_DB_PATH).",
)
@click.option(
    "--redis-url",
    type=str,
    default=None,
    help="Redis URL for RankedSets (default: REDIS_URL, else in-memory).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=None,
    help="Use JSON format for logs (default: LOG_JSON).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def cli(  # noqa: PLR0913
    ctx: click.Context,
    config_path: Path | None,
    db_path: Path | None,
    redis_url: str | None,
    json_logs: bool | None,
    verbose: bool,
) -> None:
    """Ranked prediction-market feed CLI."""
    ctx.obj = CliOptions(
        config_path=config_path,
        db_path=db_path,
        redis_url=redis_url,
        json_logs=json_logs,
        verbose=verbose,
    )


@cli.command()
@click.option(
    "--segment",
    "segments",
    multiple=True,
    help="Segment to rebuild (repeatable; default: every configured segment).",
)
@click.pass_obj
def rebuild(options: CliOptions, segments: tuple[str, ...]) -> None:
    """Rebuild RankedSets now and wait for the result."""
    with _build(options) as app:
        targets = list(segments) or app.config_holder.get().segments
        for segment in targets:
            app.admin.force_rebuild(segment)
        app.trigger.wait_idle(DEFAULT_WAIT_SECONDS)

        failed = False
        for segment in targets:
            outcome = app.trigger.last_outcome(segment)
            if outcome is None:
                click.echo(f"{segment}: no outcome recorded", err=True)
                failed = True
                continue
            if outcome.status is OutcomeStatus.COMPLETED and outcome.result:
                result = outcome.result
                top_size = result.top.size if result.top else 0
                sampled = result.diversity.sampled if result.diversity else 0
                click.echo(
                    f"{segment}: {outcome.status.value} "
                    f"(scored {result.items_scored}/{result.items_considered}, "
                    f"top-K {top_size}, diversity {sampled}, "
                    f"failures {len(result.failures)}, "
                    f"{result.duration_ms:.0f} ms)"
                )
            else:
                failed = True
                click.echo(
                    f"{segment}: {outcome.status.value} {outcome.error or ''}".rstrip(),
                    err=True,
                )

    if failed:
        sys.exit(1)


@cli.command()
@click.argument("segment", default="default")
@click.pass_obj
def resample(options: CliOptions, segment: str) -> None:
    """Resample a segment's diversity set from its live top-K set."""
    with _build(options) as app:
        result = app.admin.resample_diversity(segment)
        meta = result.meta
        if meta is None:
            click.echo(f"{segment}: no live top-K set; nothing resampled", err=True)
            sys.exit(1)
        click.echo(
            f"{segment}: diversity {result.sampled}/{result.considered} "
            f"(generation {meta.generation}, from top-K {meta.source_generation})"
        )


@cli.command()
@click.argument("segment", default="default")
@click.option("--cursor", type=str, default=None, help="Cursor from a previous page.")
@click.option("--limit", type=int, default=None, help="Page size.")
@click.pass_obj
def page(
    options: CliOptions, segment: str, cursor: str | None, limit: int | None
) -> None:
    """Print one page of a segment's feed as JSON."""
    with _build(options) as app:
        try:
            result = app.service.get_page(segment, cursor, limit)
        except FeedError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(2)
        _echo_json(result.model_dump(mode="json"))


@cli.command()
@click.argument("segment", default="default")
@click.option("--limit", type=int, default=None, help="Maximum items.")
@click.pass_obj
def trending(options: CliOptions, segment: str, limit: int | None) -> None:
    """Print items with high persisted confidence and trend scores as JSON."""
    with _build(options) as app:
        try:
            items = app.service.get_trending(segment, limit)
        except FeedError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(2)
        _echo_json([item.model_dump(mode="json") for item in items])


@cli.command()
@click.argument("tags", nargs=-1, required=True)
@click.option("--limit", type=int, default=None, help="Maximum items.")
@click.pass_obj
def tagged(options: CliOptions, tags: tuple[str, ...], limit: int | None) -> None:
    """Print items carrying any of TAGS, best scored first, as JSON."""
    with _build(options) as app:
        try:
            items = app.service.get_by_tags(tags, limit)
        except FeedError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(2)
        _echo_json([item.model_dump(mode="json") for item in items])


@cli.command()
@click.argument("segment", default="default")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_obj
def stats(options: CliOptions, segment: str, json_output: bool) -> None:
    """Display ranking statistics and cache state for a segment."""
    with _build(options) as app:
        segment_stats = app.service.get_stats(segment)
        inspection = app.admin.inspect_caches(segment)
        store_stats = app.item_store.get_stats()

        if json_output:
            _echo_json(
                {
                    "segment": segment_stats.model_dump(mode="json"),
                    "caches": inspection.model_dump(mode="json"),
                    "store": store_stats.model_dump(mode="json"),
                }
            )
            return

        click.echo(f"Segment: {segment}")
        click.echo("=" * 40)
        click.echo(f"  Eligible items: {segment_stats.total_eligible}")
        click.echo(f"  Top-K size: {segment_stats.top_k_size}")
        click.echo(f"  Diversity size: {segment_stats.diversity_size}")
        last = segment_stats.last_rebuilt_at
        click.echo(f"  Last rebuilt: {last.isoformat() if last else 'never'}")
        click.echo(f"  Diversity in sync: {inspection.diversity_in_sync}")
        click.echo("")
        click.echo("Item store:")
        click.echo(f"  Total items: {store_stats.total_items}")
        click.echo(f"  Scored items: {store_stats.scored_items}")
        for source, count in sorted(store_stats.by_source.items()):
            click.echo(f"  {source}: {count}")


@cli.command()
@click.pass_obj
def weights(options: CliOptions) -> None:
    """Show the scoring strategy and weights in effect."""
    with _build(options) as app:
        _echo_json(app.admin.get_algorithm_info())


@cli.command("set-weights")
@click.option("--w1", "w1_liquidity", type=float, default=None, help="Liquidity.")
@click.option("--w2", "w2_volume", type=float, default=None, help="Volume.")
@click.option("--w3", "w3_drift", type=float, default=None, help="Price drift.")
@click.option("--w4", "w4_social", type=float, default=None, help="Social.")
@click.option("--w5", "w5_time", type=float, default=None, help="Time decay.")
@click.option(
    "--strategy",
    type=click.Choice(["fixed_v1", "weighted_v2"]),
    default=None,
    help="Scoring strategy.",
)
@click.option(
    "--write",
    "write_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the validated configuration to this YAML file.",
)
@click.pass_obj
def set_weights(  # noqa: PLR0913
    options: CliOptions,
    w1_liquidity: float | None,
    w2_volume: float | None,
    w3_drift: float | None,
    w4_social: float | None,
    w5_time: float | None,
    strategy: str | None,
    write_path: Path | None,
) -> None:
    """Validate new weights and optionally save them to a config file.

    Weights that are not given keep their current values; the result must
    sum to 1.
    """
    changes = {
        name: value
        for name, value in {
            "w1_liquidity": w1_liquidity,
            "w2_volume": w2_volume,
            "w3_drift": w3_drift,
            "w4_social": w4_social,
            "w5_time": w5_time,
        }.items()
        if value is not None
    }

    with _build(options) as app:
        try:
            if changes:
                app.admin.update_weights(**changes)
            if strategy:
                app.admin.set_strategy(strategy)
        except ConfigurationError as e:
            _fail_configuration(e)

        config = app.admin.get_config()
        _echo_json(app.admin.get_algorithm_info())

        if write_path is not None:
            write_path.parent.mkdir(parents=True, exist_ok=True)
            write_path.write_text(
                yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False),
                encoding="utf-8",
            )
            click.echo(f"Configuration written to {write_path}")


@cli.command("ingest-file")
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--force", is_flag=True, help="Rebuild even if nothing changed.")
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for triggered rebuilds to finish (default: wait).",
)
@click.pass_obj
def ingest_file(options: CliOptions, path: Path, force: bool, wait: bool) -> None:
    """Ingest normalized markets from a JSON or YAML file."""
    with _build(options) as app:
        try:
            connector = StaticConnector.from_file(path)
        except ConfigurationError as e:
            _fail_configuration(e)

        result = app.ingestion_runner([connector], max_workers=1).run(force=force)
        click.echo(
            f"Ingested {path}: {result.total_new} new, "
            f"{result.total_updated} updated, {result.total_unchanged} unchanged"
        )
        for trigger in result.triggers:
            click.echo(f"  rebuild {trigger.segment}: {trigger.status.value}")

        if wait and result.triggers:
            app.trigger.wait_idle(DEFAULT_WAIT_SECONDS)

    if result.connectors_failed:
        sys.exit(1)


@cli.command("run-scheduler")
@click.option(
    "--poll-seconds",
    type=float,
    default=1.0,
    help="Seconds between checks for due rebuilds.",
)
@click.pass_obj
def run_scheduler(options: CliOptions, poll_seconds: float) -> None:
    """Rebuild every segment on the configured interval until interrupted."""
    with _build(options) as app:
        scheduler = app.scheduler()
        log = logger.bind(component="cli", command="run-scheduler")
        log.info("scheduler_command_started", poll_seconds=poll_seconds)
        try:
            scheduler.run_forever(poll_seconds)
        except KeyboardInterrupt:
            log.info("scheduler_interrupted")


if __name__ == "__main__":
    cli()
