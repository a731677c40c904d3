"""CLI entry point for the estatepress content pipeline."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

console = Console()


@click.group()
@click.version_option(version="0.1.0")
@click.option("--log-level", default=None, help="Override ESTATEPRESS_LOG_LEVEL")
def main(log_level: str | None) -> None:
    """Real estate blog topic discovery, generation and strategy learning."""
    from estatepress.config import get_settings

    level = (log_level or get_settings().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# discover / topics / sweep: topic research
# ---------------------------------------------------------------------------


@main.command()
@click.option("--count", "-n", default=5, help="Maximum topics to return")
@click.option("--min-score", "-m", type=float, default=None, help="Minimum total score")
@click.option("--include-recent", is_flag=True, help="Keep topics used in the last 60 days")
def discover(count: int, min_score: float | None, include_recent: bool) -> None:
    """Discover, score and store new article topics."""
    from estatepress.config import get_settings
    from estatepress.service import build_service

    settings = get_settings()
    _check_api_key(settings)
    service = build_service(settings)

    with console.status("[bold green]Researching topics..."):
        result = service.discover_topics(
            count=count, exclude_recent=not include_recent, min_score=min_score
        )

    if not result["success"]:
        console.print(f"[bold red]Error:[/bold red] {result['error']}")
        raise SystemExit(1)

    topics = result["data"]["topics"]
    for name, error in result["data"]["source_failures"].items():
        console.print(f"[yellow]Source {name} failed:[/yellow] {error}")
    if not topics:
        console.print("[yellow]No topics met the minimum score.[/yellow]")
        return

    table = Table(title=f"{len(topics)} topics")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Total", justify="right", style="bold")
    table.add_column("Rel", justify="right")
    table.add_column("Rec", justify="right")
    table.add_column("Auth", justify="right")
    table.add_column("Uniq", justify="right")
    table.add_column("Source", style="dim")
    for t in topics:
        table.add_row(
            str(t["id"] or "-"),
            t["title"],
            f"{t['total_score']:.2f}",
            f"{t['relevance_score']:.0f}",
            f"{t['recency_score']:.0f}",
            f"{t['authority_score']:.0f}",
            f"{t['uniqueness_score']:.0f}",
            t["source"],
        )
    console.print(table)


@main.command()
@click.option("--limit", "-n", default=10, help="Number of topics to show")
def topics(limit: int) -> None:
    """List pending topics, best first."""
    from estatepress.config import get_settings
    from estatepress.research.discovery import TopicDiscoveryEngine
    from estatepress.storage.store import ContentStore

    settings = get_settings()
    engine = TopicDiscoveryEngine(ContentStore(settings.db_path), [], region=settings.region)
    records = engine.pending_topics(limit)

    if not records:
        console.print("[dim]No pending topics. Run 'estatepress discover' first.[/dim]")
        return

    table = Table(title="Pending topics")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Score", justify="right")
    table.add_column("Expires", style="dim")
    for r in records:
        expires = r.expires_at.strftime("%Y-%m-%d") if r.expires_at else "-"
        table.add_row(str(r.id), r.title, f"{r.total_score:.2f}", expires)
    console.print(table)


@main.command()
def sweep() -> None:
    """Archive expired topics and purge old archived ones."""
    from estatepress.config import get_settings
    from estatepress.research.discovery import TopicDiscoveryEngine
    from estatepress.storage.store import ContentStore

    settings = get_settings()
    engine = TopicDiscoveryEngine(
        ContentStore(settings.db_path),
        [],
        region=settings.region,
        expiry_days=settings.topic_expiry_days,
        retention_days=settings.archive_retention_days,
    )
    result = engine.sweep_expired()
    console.print(f"[green]Archived {result.archived}, deleted {result.deleted} topics.[/green]")


# ---------------------------------------------------------------------------
# generate: article pipeline
# ---------------------------------------------------------------------------


@main.command()
@click.option("--topic-id", "-i", type=int, default=None, help="Stored topic to write about")
@click.option("--title", "-t", default=None, help="Custom topic title")
@click.option("--description", "-d", default="", help="Custom topic angle")
@click.option("--keyword", "-k", multiple=True, help="Custom topic keyword (repeatable)")
@click.option("--location", "-l", multiple=True, help="Related city (repeatable)")
@click.option("--cta", "cta_type", default="auto", help="CTA type or 'auto'")
@click.option("--publish", is_flag=True, help="Publish immediately instead of saving a draft")
def generate(
    topic_id: int | None,
    title: str | None,
    description: str,
    keyword: tuple[str, ...],
    location: tuple[str, ...],
    cta_type: str,
    publish: bool,
) -> None:
    """Generate an article for a topic (or the best newly discovered one)."""
    from estatepress.config import get_settings
    from estatepress.service import build_service

    settings = get_settings()
    _check_api_key(settings)
    service = build_service(settings)

    with console.status("[bold green]Generating article..."):
        result = service.generate_article(
            topic_id=topic_id,
            title=title,
            description=description,
            keywords=list(keyword),
            locations=list(location),
            cta_type=cta_type,
            publish=publish,
        )

    if not result["success"]:
        stage = result.get("details", {}).get("stage", "?")
        console.print(f"[bold red]Failed at {stage}:[/bold red] {result['error']}")
        raise SystemExit(1)

    data = result["data"]
    console.print(
        Panel(
            f"[bold]{data['title']}",
            subtitle=f"{data['word_count']} words | SEO {data['seo_score']} | "
            f"GEO {data['geo_score']} | CTA {data['cta_type']}",
        )
    )
    for message in data["recommendations"]:
        console.print(f"  [yellow]-[/yellow] {message}")
    if data["urls"]:
        console.print(f"\n[green]Edit:[/green] {data['urls'].get('edit')}")


# ---------------------------------------------------------------------------
# analyze: SEO/GEO quality
# ---------------------------------------------------------------------------


@main.command()
@click.argument("file_path", type=click.Path(exists=True))
@click.option("--title", "-t", required=True, help="Article title")
@click.option("--meta", "-m", default="", help="Meta description")
@click.option("--keyword", "-k", default="", help="Primary keyword")
@click.option("--optimize", "write_optimized", is_flag=True, help="Rewrite the file with fixes applied")
@click.option(
    "--local-business/--no-local-business",
    default=None,
    help="Whether the post carries LocalBusiness schema (default: ESTATEPRESS_LOCAL_BUSINESS_SCHEMA)",
)
def analyze(
    file_path: str,
    title: str,
    meta: str,
    keyword: str,
    write_optimized: bool,
    local_business: bool | None,
) -> None:
    """Score an HTML article for SEO and local relevance."""
    from estatepress.config import get_settings
    from estatepress.content.base import ArticleDraft
    from estatepress.seo.quality import QualityAnalyzer

    settings = get_settings()
    analyzer = QualityAnalyzer(settings.region, settings.site_url)
    if local_business is None:
        local_business = settings.local_business_schema

    path = Path(file_path)
    content = path.read_text()
    draft = ArticleDraft(
        title=title,
        content=content,
        meta_description=meta,
        primary_keyword=keyword,
        local_business_schema=local_business,
    )
    data = analyzer.analyze(draft).to_dict()

    console.print(f"\n[bold]SEO {data['seo_score']}[/bold]  [bold]GEO {data['geo_score']}[/bold]\n")
    table = Table()
    table.add_column("Criterion")
    table.add_column("Value", justify="right")
    table.add_column("Status")
    colors = {"good": "green", "ok": "yellow", "poor": "red"}
    for group in ("seo", "geo"):
        for name, finding in data[group].items():
            status = finding["status"]
            table.add_row(f"{group}:{name}", str(finding["value"]), f"[{colors[status]}]{status}")
    console.print(table)

    for rec in data["recommendations"]:
        console.print(f"  [{'red' if rec['status'] == 'poor' else 'yellow'}]-[/] {rec['message']}")

    if write_optimized:
        path.write_text(analyzer.optimize(content, title))
        console.print(f"\n[green]Optimized content written to {path}[/green]")


# ---------------------------------------------------------------------------
# feedback / refresh-stats / adjust-weights / insights / strategies
# ---------------------------------------------------------------------------


@main.command()
@click.option("--article-id", "-a", type=int, required=True, help="Article ID")
@click.option(
    "--type",
    "-T",
    "feedback_type",
    type=click.Choice(["edit_distance", "user_rating", "engagement", "search_performance"]),
    required=True,
)
@click.option("--metric", "-m", required=True, help="Metric name, e.g. page_views")
@click.option("--value", "-v", type=float, required=True, help="Metric value")
def feedback(article_id: int, feedback_type: str, metric: str, value: float) -> None:
    """Record a post-publication signal for an article."""
    from estatepress.config import get_settings
    from estatepress.learning.feedback import FeedbackLearner
    from estatepress.storage.store import ContentStore

    settings = get_settings()
    learner = FeedbackLearner(ContentStore(settings.db_path))
    event_id = learner.record(article_id, feedback_type, metric, value)
    if event_id is None:
        console.print("[bold red]Feedback was not recorded.[/bold red]")
        raise SystemExit(1)
    console.print(f"[green]Recorded feedback event {event_id}.[/green]")


@main.command("refresh-stats")
def refresh_stats() -> None:
    """Recompute per-strategy usage and outcome statistics."""
    from estatepress.config import get_settings
    from estatepress.learning.feedback import FeedbackLearner
    from estatepress.storage.store import ContentStore

    settings = get_settings()
    stats = FeedbackLearner(ContentStore(settings.db_path)).update_strategy_statistics()
    _print_stats_table(stats)


@main.command("adjust-weights")
@click.option("--threshold", default=10.0, help="Minimum success-rate spread to act on")
def adjust_weights(threshold: float) -> None:
    """Shift selection weight toward better-performing strategy versions."""
    from estatepress.config import get_settings
    from estatepress.learning.feedback import FeedbackLearner
    from estatepress.storage.store import ContentStore

    settings = get_settings()
    learner = FeedbackLearner(ContentStore(settings.db_path))
    learner.update_strategy_statistics()
    adjustments = learner.auto_adjust_weights(threshold)

    if not adjustments:
        console.print("[dim]No adjustments: not enough data or no meaningful spread.[/dim]")
        return
    for a in adjustments:
        arrow = "[green]+[/green]" if a.action == "increase" else "[red]-[/red]"
        console.print(
            f"  {arrow} {a.strategy_key} v{a.version}: {a.old_weight} -> {a.new_weight}"
            f"  [dim]{a.reason}[/dim]"
        )


@main.command()
@click.option(
    "--period", "-p", type=click.Choice(["week", "month", "quarter"]), default="month"
)
@click.option("--json", "as_json", is_flag=True, help="Print the raw report as JSON")
def insights(period: str, as_json: bool) -> None:
    """Summarize article outcomes and strategy performance."""
    from estatepress.config import get_settings
    from estatepress.learning.feedback import FeedbackLearner
    from estatepress.storage.store import ContentStore

    settings = get_settings()
    report = FeedbackLearner(ContentStore(settings.db_path)).insights_report(period)

    if as_json:
        from dataclasses import asdict

        console.print_json(json.dumps(asdict(report), default=str))
        return

    s = report.summary
    console.print(
        Panel(
            f"Articles: {s['total_articles']}  Published: {s['published']} "
            f"({s['publish_rate']}%)\n"
            f"Avg SEO: {s['avg_seo_score']}  Avg GEO: {s['avg_geo_score']}  "
            f"Avg edit: {s['avg_edit_distance']}  Avg rating: {s['avg_rating']}",
            title=f"Insights: last {period}",
        )
    )
    if report.weekly_trends:
        table = Table(title="Weekly trend")
        table.add_column("Week")
        table.add_column("Articles", justify="right")
        table.add_column("Published", justify="right")
        table.add_column("Avg SEO", justify="right")
        for w in report.weekly_trends:
            table.add_row(w["week"], str(w["articles"]), str(w["published"]), str(w["avg_seo_score"]))
        console.print(table)
    for rec in report.recommendations:
        console.print(f"  [yellow]-[/yellow] {rec}")


@main.command()
def strategies() -> None:
    """Show every strategy version with its weight and outcomes."""
    from estatepress.config import get_settings
    from estatepress.learning.strategies import StrategyManager
    from estatepress.storage.store import ContentStore

    settings = get_settings()
    manager = StrategyManager(ContentStore(settings.db_path))
    manager.seed_defaults()

    table = Table(title="Strategies")
    table.add_column("Key")
    table.add_column("Version")
    table.add_column("Active")
    table.add_column("Weight", justify="right")
    table.add_column("Uses", justify="right")
    table.add_column("Success %", justify="right")
    for v in manager.versions(active_only=False):
        table.add_row(
            v.strategy_key,
            v.version,
            "yes" if v.is_active else "no",
            str(v.weight),
            str(v.total_uses),
            f"{v.success_rate:.1f}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_api_key(settings: object) -> None:
    """Exit with a helpful message if the API key is not set."""
    if not getattr(settings, "anthropic_api_key", ""):
        console.print(
            "[bold red]Error:[/bold red] ANTHROPIC_API_KEY not set.\n"
            "Add it to .env in the project root."
        )
        raise SystemExit(1)


def _print_stats_table(stats: list) -> None:
    table = Table(title="Strategy statistics")
    table.add_column("Key")
    table.add_column("Version")
    table.add_column("Uses", justify="right")
    table.add_column("Published", justify="right")
    table.add_column("Avg quality", justify="right")
    table.add_column("Avg edit", justify="right")
    table.add_column("Success %", justify="right")
    for s in stats:
        table.add_row(
            s.strategy_key,
            s.version,
            str(s.total_uses),
            str(s.published_count),
            f"{s.avg_quality_score:.1f}",
            "-" if s.avg_edit_distance is None else f"{s.avg_edit_distance:.1f}",
            f"{s.success_rate:.1f}",
        )
    console.print(table)
