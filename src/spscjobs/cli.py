"""Command-line interface for the SPSC job scraper.

Commands:
- ``run``: one scheduled scraper run
- ``enable`` / ``disable``: flip the remote kill switch
- ``status``: kill switch state and the latest run
- ``runs``: recent, error-heavy or stuck runs
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer

from spscjobs.browser.playwright_adapter import PlaywrightAdapter
from spscjobs.discovery.notice_board import NoticeBoardScraper
from spscjobs.documents.pdf_parser import PdfDocumentParser
from spscjobs.exceptions import ConfigurationError
from spscjobs.orchestrator import EXIT_FAILURE, ScrapePipeline
from spscjobs.reporting.alerts import AlertDispatcher, AlertSink, ConsoleAlertSink, EmailAlertSink
from spscjobs.reporting.console import print_kill_switch, print_run_report, print_runs
from spscjobs.reporting.run_tracker import RunTracker
from spscjobs.safety.kill_switch import KillSwitch
from spscjobs.settings import AppSettings, validate_runtime
from spscjobs.storage.sqlite_store import SQLiteDocumentStore

logger = logging.getLogger(__name__)

app = typer.Typer(help="SPSC job notice scraper")

_config_option = typer.Option(None, "--config", "-c", help="Path to settings.yaml")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with any ``extra={"data": ...}`` attached."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data = getattr(record, "data", None)
        if data:
            payload["data"] = data
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(json_logs: bool = False) -> None:
    handler = logging.StreamHandler()
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s", datefmt="%H:%M:%S"
            )
        )
    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("pdfminer").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _load(config: Optional[Path]) -> AppSettings:
    settings = AppSettings.from_yaml(config)
    configure_logging(settings.json_logs)
    return settings


def _open_store(settings: AppSettings) -> SQLiteDocumentStore:
    return SQLiteDocumentStore(settings.resolved_store_path())


def build_alerts(settings: AppSettings) -> AlertDispatcher:
    sinks: list[AlertSink] = [ConsoleAlertSink()]
    if settings.smtp_host and settings.alert_email:
        sinks.append(
            EmailAlertSink(
                settings.smtp_host, settings.smtp_port, settings.alert_sender, settings.alert_email
            )
        )
    return AlertDispatcher(sinks, enabled=settings.alerts_enabled)


async def _run_pipeline(settings: AppSettings) -> int:
    store = _open_store(settings)
    try:
        pipeline = ScrapePipeline(
            settings,
            store,
            NoticeBoardScraper(PlaywrightAdapter(), settings),
            PdfDocumentParser(settings),
            build_alerts(settings),
        )
        task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        if task is not None:
            for signum in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(signum, task.cancel)
                except (NotImplementedError, RuntimeError):
                    pass  # not supported on this platform
        return await pipeline.run()
    finally:
        store.close()


@app.command()
def run(config: Optional[Path] = _config_option) -> None:
    """Scrape the notice board once and store new job postings."""
    settings = _load(config)
    try:
        validate_runtime(settings)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(EXIT_FAILURE)

    try:
        code = asyncio.run(_run_pipeline(settings))
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.warning("Run interrupted.")
        code = EXIT_FAILURE
    except Exception as exc:
        logger.error("Scraper failed: %s", exc)
        code = EXIT_FAILURE
    raise typer.Exit(code)


@app.command()
def enable(
    reason: str = typer.Option("", "--reason", help="Why the scraper is re-enabled"),
    config: Optional[Path] = _config_option,
) -> None:
    """Turn the kill switch off so scheduled runs proceed."""
    settings = _load(config)
    store = _open_store(settings)
    try:
        KillSwitch(store).enable(reason or "Manual enable")
        print_kill_switch(KillSwitch(store).status())
    finally:
        store.close()


@app.command()
def disable(
    reason: str = typer.Option(..., "--reason", help="Why the scraper is being stopped"),
    config: Optional[Path] = _config_option,
) -> None:
    """Stop all scraper runs until re-enabled."""
    settings = _load(config)
    store = _open_store(settings)
    try:
        KillSwitch(store).disable(reason)
        print_kill_switch(KillSwitch(store).status())
    finally:
        store.close()


@app.command()
def status(config: Optional[Path] = _config_option) -> None:
    """Show the kill switch state and the most recent run."""
    settings = _load(config)
    store = _open_store(settings)
    try:
        print_kill_switch(KillSwitch(store).status())
        latest = RunTracker(store, settings.mode.value).latest_run()
        if latest is None:
            typer.echo("No runs recorded yet.")
        else:
            print_run_report(latest)
    finally:
        store.close()


@app.command()
def runs(
    limit: int = typer.Option(7, "--limit", help="How many runs to show"),
    errors: bool = typer.Option(False, "--errors", help="Only runs with parsing errors"),
    stuck: bool = typer.Option(False, "--stuck", help="Only runs that never finished"),
    config: Optional[Path] = _config_option,
) -> None:
    """List recorded scraper runs."""
    settings = _load(config)
    store = _open_store(settings)
    try:
        tracker = RunTracker(store, settings.mode.value)
        if stuck:
            found = tracker.find_stuck_runs(timedelta(minutes=settings.max_run_minutes))
            print_runs(found, title="Stuck Runs")
            if found:
                raise typer.Exit(EXIT_FAILURE)
        elif errors:
            print_runs(tracker.runs_with_errors(limit), title="Runs With Parsing Errors")
        else:
            print_runs(tracker.recent_runs(limit))
    finally:
        store.close()


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        logging.info("Interrupted by user.")
        sys.exit(130)
