"""Command-line interface for Auth Sentry.

This module provides Typer CLI commands for analyzing authentication
logs and running a demo on the bundled sample log.
"""

import logging
from pathlib import Path
from typing import Optional

import typer

from auth_sentry import __version__
from auth_sentry.config import DetectorConfig, OverflowPolicy, load_config
from auth_sentry.dispatch import AlertDispatcher
from auth_sentry.engine import DetectionEngine
from auth_sentry.errors import ConfigError
from auth_sentry.ingest import read_lines
from auth_sentry.report import (
    CollectingSink,
    ConsoleSink,
    JsonlFileSink,
    ReportSink,
    WebhookSink,
    generate_alerts_json,
)
from auth_sentry.schema import Severity

# Create Typer app
app = typer.Typer(
    name="auth-sentry",
    help="Auth Sentry: streaming brute-force login detector",
    add_completion=False,
)

SAMPLE_LOG = Path("samples") / "sample_auth.log"


def setup_logging(debug: bool = False) -> None:
    """Configure logging.

    Args:
        debug: Enable debug level logging.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.command()
def analyze(
    input: Path = typer.Option(
        ...,
        "--input", "-i",
        help="Path to the authentication log ('-' for stdin)",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="YAML file with detector settings",
    ),
    window: Optional[float] = typer.Option(
        None,
        "--window",
        help="Window duration (seconds) [default: 60]",
    ),
    grace: Optional[float] = typer.Option(
        None,
        "--grace",
        help="Eviction grace for idle identities (seconds) [default: 2x window]",
    ),
    threshold: Optional[int] = typer.Option(
        None,
        "--threshold", "-t",
        help="Failures per window that trigger an alert [default: 3]",
    ),
    reset_on_success: Optional[bool] = typer.Option(
        None,
        "--reset-on-success/--keep-on-success",
        help="Clear an identity's failures after a successful login",
    ),
    max_line_length: Optional[int] = typer.Option(
        None,
        "--max-line-length",
        help="Reject lines longer than this many UTF-8 bytes [default: 8192]",
    ),
    max_identities: Optional[int] = typer.Option(
        None,
        "--max-identities",
        help="Maximum identities tracked at once [default: 100000]",
    ),
    overflow_policy: Optional[OverflowPolicy] = typer.Option(
        None,
        "--overflow-policy",
        help="What to do with new identities at the limit",
    ),
    alerts_out: Optional[Path] = typer.Option(
        None,
        "--alerts-out", "-o",
        help="Append alerts as JSON Lines to this file",
    ),
    report: Optional[Path] = typer.Option(
        None,
        "--report",
        help="Write a JSON summary of all alerts to this file",
    ),
    webhook_url: Optional[str] = typer.Option(
        None,
        "--webhook-url",
        help="POST each alert as JSON to this URL",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Do not print alerts to stdout",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging",
    ),
) -> None:
    """Analyze an authentication log and raise brute-force alerts.

    Streams the log through the parser, window aggregator and alert
    evaluator, delivering alerts to the selected sinks as they fire.
    """
    setup_logging(debug)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(
            config_file,
            window_duration=window,
            eviction_grace=grace,
            threshold=threshold,
            reset_on_success=reset_on_success,
            max_line_length=max_line_length,
            max_identities=max_identities,
            overflow_policy=overflow_policy,
        )
    except ConfigError as e:
        logger.error(str(e))
        raise typer.Exit(2)

    try:
        lines = read_lines(input)
    except FileNotFoundError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    sinks: list[ReportSink] = []
    if not quiet:
        sinks.append(ConsoleSink())
    if alerts_out:
        sinks.append(JsonlFileSink(alerts_out))
    if webhook_url:
        sinks.append(WebhookSink(webhook_url))
    collector = CollectingSink() if report else None
    if collector is not None:
        sinks.append(collector)

    logger.info(f"Auth Sentry v{__version__}")
    logger.info(f"Analyzing: {input}")
    _log_policy(logger, config)

    with AlertDispatcher(sinks) as dispatcher:
        engine = DetectionEngine(config, dispatcher=dispatcher)
        stats = engine.run(lines)

    if collector is not None:
        generate_alerts_json(collector.alerts, report)

    # Summary
    typer.echo("")
    typer.echo("=" * 60)
    typer.echo("  ANALYSIS COMPLETE")
    typer.echo("=" * 60)
    typer.echo(f"  Lines read:       {stats.lines}")
    typer.echo(f"  Events parsed:    {stats.events}")
    typer.echo(f"  Lines skipped:    {stats.skipped}")
    typer.echo(f"  Identities refused: {stats.rejected}")
    typer.echo(f"  Alerts raised:    {stats.alerts_total}")
    typer.echo(f"  Delivery failures: {dispatcher.failure_count}")
    typer.echo("=" * 60)

    if stats.alerts_total:
        typer.echo("")
        typer.echo("  Alert Severity Breakdown:")
        for sev in [Severity.HIGH, Severity.MEDIUM, Severity.LOW]:
            if stats.alerts_by_severity[sev] > 0:
                typer.echo(f"    {sev.value.upper()}: {stats.alerts_by_severity[sev]}")


@app.command()
def demo() -> None:
    """Run demo analysis on the sample log.

    Uses samples/sample_auth.log with the default policy.
    """
    sample_paths = [
        SAMPLE_LOG,
        Path(__file__).parent.parent.parent / SAMPLE_LOG,
    ]

    sample_file = None
    for path in sample_paths:
        if path.exists():
            sample_file = path
            break

    if not sample_file:
        typer.echo(f"Error: Sample file not found. Expected at {SAMPLE_LOG}")
        typer.echo("Run from the project root directory.")
        raise typer.Exit(1)

    typer.echo("")
    typer.echo("Auth Sentry - DEMO MODE")
    typer.echo("")

    analyze(
        input=sample_file,
        config_file=None,
        window=None,
        grace=None,
        threshold=None,
        reset_on_success=None,
        max_line_length=None,
        max_identities=None,
        overflow_policy=None,
        alerts_out=None,
        report=None,
        webhook_url=None,
        quiet=False,
        debug=False,
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"Auth Sentry v{__version__}")


def _log_policy(logger: logging.Logger, config: DetectorConfig) -> None:
    logger.info(
        f"Policy: threshold={config.threshold} "
        f"window={config.window_duration.total_seconds():g}s "
        f"grace={config.eviction_grace.total_seconds():g}s "
        f"reset_on_success={config.reset_on_success} "
        f"max_identities={config.max_identities} ({config.overflow_policy.value})"
    )


if __name__ == "__main__":
    app()
