"""Command line interface for the episode aggregator."""

import signal
import sys
from typing import Optional, Tuple

import click
import structlog
from dotenv import load_dotenv

from episode_aggregator.config import AggregatorConfig
from episode_aggregator.core.aggregator import FeedAggregator
from episode_aggregator.core.errors import ConfigurationError, PersistenceError
from episode_aggregator.core.models import RoundReport
from episode_aggregator.logging_config import configure_logging
from episode_aggregator.metrics import start_metrics_server
from episode_aggregator.storage.sqlite_storage import SQLiteStorage

logger = structlog.get_logger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def load_config(
    config_path: Optional[str] = None,
    db_path: Optional[str] = None,
    index_url: Optional[str] = None,
    interval: Optional[float] = None,
    metrics_port: Optional[int] = None,
) -> AggregatorConfig:
    """Build the configuration from an optional JSON file and explicit overrides.

    Raises:
        ConfigurationError: If the file or an override is invalid
    """
    config = AggregatorConfig.from_file(config_path) if config_path else AggregatorConfig()
    data = config.model_dump()
    if db_path:
        data["storage"]["db_path"] = db_path
    if index_url:
        data["index"]["base_url"] = index_url
    if interval:
        data["interval"] = interval
    if metrics_port:
        data["metrics_port"] = metrics_port
    return AggregatorConfig.from_dict(data)


def format_report(report: RoundReport) -> str:
    """Render a one-line-per-source summary of a round."""
    if report.skipped:
        return "Round skipped: another round is in progress"
    if report.fatal_error:
        return f"Round aborted: {report.fatal_error}"

    lines = []
    for source in report.sources:
        if not source.fetched:
            lines.append(f"[{source.source_id}] {source.feed_url}: not fetched ({source.fetch_error})")
            continue
        lines.append(
            f"[{source.source_id}] {source.feed_url}: {source.posts_inserted} new, "
            f"{source.posts_skipped} known, {source.tags_linked} tags, "
            f"{source.media_linked} media, {len(source.errors)} errors"
        )
    lines.append(
        f"Total: {report.posts_inserted} new posts, {report.posts_matched} matched to media"
    )
    return "\n".join(lines)


@click.group()
@click.option(
    "--config",
    "config_path",
    envvar="AGGREGATOR_CONFIG",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON configuration file",
)
@click.option(
    "--db-path",
    envvar="DATABASE_PATH",
    type=click.Path(dir_okay=False),
    help="Path to SQLite database",
)
@click.option("--index-url", envvar="INDEX_URL", help="Search index base URL")
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    default="INFO",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Minimum log level",
)
@click.option("--json-logs", is_flag=True, envvar="JSON_LOGS", help="Emit JSON log lines")
@click.pass_context
def cli(ctx, config_path, db_path, index_url, log_level, json_logs):
    """Episode feed aggregator."""
    configure_logging(log_level, json_logs)
    ctx.ensure_object(dict)
    ctx.obj.update(config_path=config_path, db_path=db_path, index_url=index_url)


def _config_from_context(ctx, **overrides) -> AggregatorConfig:
    try:
        return load_config(
            ctx.obj.get("config_path"),
            db_path=ctx.obj.get("db_path"),
            index_url=ctx.obj.get("index_url"),
            **overrides,
        )
    except ConfigurationError as e:
        raise click.ClickException(f"{e.message}: {e.details}")


def _storage(config: AggregatorConfig) -> SQLiteStorage:
    storage = SQLiteStorage(config.storage)
    try:
        storage.initialize()
    except PersistenceError as e:
        raise click.ClickException(f"Could not initialize database: {e.message}")
    return storage


@cli.command()
@click.option(
    "--interval",
    envvar="ROUND_INTERVAL",
    type=float,
    help="Seconds between rounds",
)
@click.option("--metrics-port", envvar="METRICS_PORT", type=int, help="Expose Prometheus metrics")
@click.pass_context
def run(ctx, interval: Optional[float], metrics_port: Optional[int]):
    """Run a round now and then on a fixed interval."""
    config = _config_from_context(ctx, interval=interval, metrics_port=metrics_port)
    if config.metrics_port:
        start_metrics_server(config.metrics_port)
        logger.info("Metrics server started", port=config.metrics_port)

    aggregator = FeedAggregator(config, storage=_storage(config))

    def handle_signal(signum, frame):
        logger.info("Shutdown signal received", signal=signum)
        aggregator.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    aggregator.start()


@cli.command(name="round")
@click.pass_context
def run_once(ctx):
    """Run exactly one round and print a summary."""
    config = _config_from_context(ctx)
    aggregator = FeedAggregator(config, storage=_storage(config))
    report = aggregator.run_round()
    click.echo(format_report(report))
    if report.fatal_error:
        sys.exit(1)


@cli.command(name="init-db")
@click.pass_context
def init_db(ctx):
    """Create the database schema."""
    config = _config_from_context(ctx)
    _storage(config)
    click.echo(f"Initialized database at {config.storage.db_path}")


@cli.command(name="add-source")
@click.argument("feed_url")
@click.option("--dialect", default="rss", help="Feed dialect tag (rss or youtube)")
@click.option("--alt-name", default="", help="Alternate display name")
@click.option("--inactive", is_flag=True, help="Register the source as inactive")
@click.pass_context
def add_source(ctx, feed_url: str, dialect: str, alt_name: str, inactive: bool):
    """Register a feed source."""
    config = _config_from_context(ctx)
    storage = _storage(config)
    source_id = storage.add_source(feed_url, dialect=dialect, alt_name=alt_name, active=not inactive)
    click.echo(f"Added source {source_id}: {feed_url}")


@cli.command(name="add-media")
@click.argument("titles", nargs=-1, required=True)
@click.option("--no-auto-index", is_flag=True, help="Exclude the media from automatic matching")
@click.pass_context
def add_media(ctx, titles: Tuple[str, ...], no_auto_index: bool):
    """Register a catalog entry with one or more titles."""
    config = _config_from_context(ctx)
    storage = _storage(config)
    media_id = storage.add_media(titles, auto_index=not no_auto_index)
    click.echo(f"Added media {media_id}: {', '.join(titles)}")


def main():
    load_dotenv()
    cli(obj={})


if __name__ == "__main__":
    main()
