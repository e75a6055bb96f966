"""Operational alerts: only when a human has to act."""

from __future__ import annotations

import json
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Iterable, Protocol, runtime_checkable

from rich.console import Console
from rich.panel import Panel

from spscjobs.models import Alert

logger = logging.getLogger(__name__)

NOTICE_BOARD_URL = "https://spsc.sikkim.gov.in/Notifications.html"


@runtime_checkable
class AlertSink(Protocol):
    def deliver(self, alert: Alert) -> None:
        """Send *alert* somewhere a human will see it."""
        ...


class ConsoleAlertSink:
    """Prints alerts as a red panel on stderr."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    def deliver(self, alert: Alert) -> None:
        body = (
            f"[bold]Severity:[/bold] {alert.severity}\n"
            f"[bold]Message:[/bold] {alert.message}\n"
            f"[bold]Time:[/bold] {alert.timestamp}"
        )
        if alert.context:
            body += f"\n[bold]Context:[/bold] {json.dumps(alert.context, indent=2, default=str)}"
        self._console.print(
            Panel(body, title=f"ALERT: {alert.title}", border_style="bold red")
        )


class EmailAlertSink:
    """Sends alerts through a plain SMTP relay."""

    def __init__(self, host: str, port: int, sender: str, recipient: str) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._recipient = recipient

    def deliver(self, alert: Alert) -> None:
        msg = EmailMessage()
        msg["Subject"] = f"[{alert.severity}] {alert.title}"
        msg["From"] = self._sender
        msg["To"] = self._recipient
        msg.set_content(
            f"{alert.message}\n\nTime: {alert.timestamp}\n\n"
            + json.dumps(alert.context, indent=2, default=str)
        )
        with smtplib.SMTP(self._host, self._port, timeout=30) as smtp:
            smtp.send_message(msg)


class AlertDispatcher:
    """Fans alerts out to every sink; delivery failures never propagate.

    Outside production the alert is only logged.
    """

    def __init__(self, sinks: Iterable[AlertSink] = (), enabled: bool = False) -> None:
        self._sinks = list(sinks)
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def send(
        self,
        severity: str,
        title: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> Alert:
        alert = Alert(severity=severity, title=title, message=message, context=context or {})
        logger.error("ALERT: %s", title, extra={"data": {"severity": severity, **alert.context}})
        if not self._enabled:
            logger.warning("Alerts disabled in this runtime mode; not delivering %r.", title)
            return alert
        for sink in self._sinks:
            try:
                sink.deliver(alert)
            except Exception:
                logger.exception("Alert sink %s failed.", type(sink).__name__)
        return alert

    # ---- canned alerts ----

    def structure_change(self, url: str, error: str) -> Alert:
        return self.send(
            "CRITICAL",
            "SPSC Website Structure Changed",
            "Job scraper cannot find job listings. Website may have been "
            "redesigned. Human intervention required.",
            {"url": url, "error": error},
        )

    def consecutive_zero_jobs(self, run_count: int) -> Alert:
        return self.send(
            "HIGH",
            f"{run_count} Consecutive Runs with Zero Jobs",
            f"Scraper has found 0 jobs for {run_count} consecutive runs. This may "
            "indicate a problem with the website or scraper.",
            {"consecutive_runs": run_count, "action": f"Check {NOTICE_BOARD_URL} manually"},
        )

    def persistence_failure(self, error: str, identity: str) -> Alert:
        return self.send(
            "HIGH",
            "Job Store Write Failed After Retries",
            "Unable to save a job after multiple retries. Data may be lost.",
            {"error": error, "identity": identity},
        )

    def crash(self, error: str, run_id: str, jobs_processed: int, total_jobs: int) -> Alert:
        return self.send(
            "CRITICAL",
            "Scraper Crashed Mid-Run",
            "Job scraper encountered a fatal error and could not complete.",
            {
                "error": error,
                "run_id": run_id,
                "jobs_processed": jobs_processed,
                "total_jobs": total_jobs,
            },
        )

    def kill_switch(self, check_context: str, reason: str | None, disabled_at: str | None) -> Alert:
        return self.send(
            "HIGH",
            "Scraper Disabled via Kill Switch",
            f"Scraper was stopped remotely. Context: {check_context}",
            {"check_context": check_context, "reason": reason, "disabled_at": disabled_at},
        )
