from __future__ import annotations

import json
from datetime import datetime, time as dtime
from typing import Optional

import typer
from dateutil import parser as date_parser
from rich.console import Console
from rich.table import Table

from newsentiment.config import get_settings
from newsentiment.core.errors import NewsSentimentError
from newsentiment.core.logger import get_logger, setup_logging
from newsentiment.core.models import AggregateResult, DateRange
from newsentiment.core.timeutils import IST, ensure_aware
from newsentiment.engine import build_engine, open_engine
from newsentiment.parsers.registry import create_default_registry

log = get_logger("app")
console = Console()
cli_app = typer.Typer(help="Multi-source Indian market news sentiment for a stock ticker.")

LABEL_STYLES = {"positive": "green", "negative": "red", "neutral": "yellow"}


def _setup_logging() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.log_json, log_file=settings.log_file or None)


def _parse_day(value: Optional[str], end: bool = False) -> Optional[datetime]:
    """Dates given without a time cover the whole day, IST."""
    if not value:
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError) as e:
        raise typer.BadParameter(f"not a date: {value}") from e
    if parsed.time() == dtime(0, 0) and end:
        parsed = parsed.replace(hour=23, minute=59, second=59)
    return ensure_aware(parsed, IST)


def _print_result(result: AggregateResult) -> None:
    overall = result.overall_sentiment
    style = LABEL_STYLES.get(overall.label, "white")
    console.print(
        f"[bold]{result.ticker}[/bold]: [{style}]{overall.label}[/{style}] "
        f"score={overall.score:.3f} confidence={overall.confidence:.3f}"
    )
    console.print(result.message)
    if result.error:
        console.print(f"[red]{result.error}[/red]")

    b = result.breakdown
    console.print(
        f"positive {b.positive} ({b.positive_percentage}%)  "
        f"negative {b.negative} ({b.negative_percentage}%)  "
        f"neutral {b.neutral} ({b.neutral_percentage}%)"
    )

    if result.per_source_status:
        table = Table(title="Sources")
        table.add_column("Source")
        table.add_column("Status")
        table.add_column("Articles", justify="right")
        table.add_column("Discarded", justify="right")
        table.add_column("Error")
        for name, status in result.per_source_status.items():
            table.add_row(name, status.status, str(status.count), str(status.discarded), status.error or "")
        console.print(table)

    if result.articles:
        table = Table(title="Articles")
        table.add_column("Source")
        table.add_column("Published")
        table.add_column("Sentiment")
        table.add_column("Title")
        for article in result.articles:
            sentiment = article.sentiment
            table.add_row(
                article.source,
                article.published_at.strftime("%Y-%m-%d %H:%M") if article.published_at else "-",
                f"{sentiment.label} ({sentiment.polarity:.2f})" if sentiment else "-",
                article.title[:80],
            )
        console.print(table)


@cli_app.command()
def sentiment(
    ticker: str = typer.Argument(..., help="Stock symbol, e.g. RELIANCE"),
    date_from: Optional[str] = typer.Option(None, "--from", help="Earliest publish date (YYYY-MM-DD)"),
    date_to: Optional[str] = typer.Option(None, "--to", help="Latest publish date (YYYY-MM-DD)"),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Maximum articles (default NEWS_LIMIT)"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Crawl news for TICKER and print its aggregated sentiment."""
    _setup_logging()
    settings = get_settings()
    date_range = DateRange(_parse_day(date_from), _parse_day(date_to, end=True))

    try:
        with open_engine(settings) as engine:
            result = engine.orchestrator.get_sentiment(ticker, date_range, limit or settings.news_limit)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2) from e
    except NewsSentimentError as e:
        log.error(f"Sentiment request failed: {e}")
        raise typer.Exit(code=1) from e

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_result(result)


@cli_app.command()
def sources():
    """List configured news sources and their parsers."""
    _setup_logging()
    settings = get_settings()
    configs = settings.source_configs()
    registry = create_default_registry(configs)
    health = registry.health()

    table = Table(title="News sources")
    table.add_column("Priority", justify="right")
    table.add_column("Name")
    table.add_column("Site")
    table.add_column("Req/h", justify="right")
    table.add_column("Weight", justify="right")
    table.add_column("Kind")
    table.add_column("Enabled")
    for config in configs:
        parser = health.get(config.name, {})
        table.add_row(
            str(config.priority),
            config.name,
            config.base_url,
            str(config.max_requests_per_hour),
            f"{config.reliability:.2f}",
            parser.get("documentKind", "-"),
            "[green]yes[/green]" if config.enabled else "[dim]no[/dim]",
        )
    console.print(table)


@cli_app.command()
def validate():
    """Validate configuration without crawling."""
    setup_logging("INFO")

    try:
        settings = get_settings()
        log.info("Configuration validation passed!")
        log.info(f"  Sources: {settings.enabled_sources_list}")
        log.info(f"  Pool: {settings.browser_pool_size} browser(s), headless={settings.browser_headless}")
        log.info(
            f"  Navigation: {settings.nav_max_attempts} attempts, "
            f"backoff {settings.nav_retry_delay}s x{settings.nav_backoff_multiplier}"
        )
        log.info(
            f"  Aggregation: decay={settings.recency_decay_days}d, "
            f"normalize_by_weight={settings.normalize_by_weight}"
        )

        if settings.huggingface_api_key:
            log.info(f"  Classifier: {settings.sentiment_model}")
        else:
            log.warning("  Classifier: HUGGINGFACE_API_KEY not set, keyword sentiment only")

        log.info(f"  Cache: {'redis' if settings.redis_url else 'in-memory'}")
        log.info(f"  Store: {settings.store_path or 'disabled'}")
        log.info(f"  Dedupe: {'enabled' if settings.dedupe_enabled else 'disabled'}")

    except Exception as e:
        log.error(f"Configuration validation failed: {e}")
        raise typer.Exit(code=1)


@cli_app.command()
def health(as_json: bool = typer.Option(False, "--json", help="Print the report as JSON")):
    """Report limiter, pool, parser and classifier health without crawling."""
    _setup_logging()
    engine = build_engine(get_settings())
    try:
        report = engine.orchestrator.status()
    finally:
        engine.close()

    if as_json:
        typer.echo(json.dumps(report, indent=2, default=str))
        return

    style = {"operational": "green", "degraded": "yellow", "down": "red"}[report["status"]]
    console.print(f"Status: [{style}]{report['status']}[/{style}]")
    table = Table(title="Sources")
    table.add_column("Source")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Resets in", justify="right")
    table.add_column("Parser")
    for name, s in report["sources"].items():
        parser = report["parsers"].get(name, {})
        table.add_row(
            name,
            f"{s['requests']}/{s['maxRequests']}",
            str(s["remaining"]),
            f"{s['timeUntilReset']:.0f}s",
            "ok" if parser.get("healthy") else "missing selectors",
        )
    console.print(table)
    sentiment_health = report["sentiment"]
    console.print(
        f"Classifier: {'configured' if sentiment_health['classifierConfigured'] else 'keyword fallback'}"
    )


if __name__ == "__main__":
    cli_app()
