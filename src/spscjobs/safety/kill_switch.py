"""Remote kill switch stored at ``system_controls/scraper``.

A missing document means the switch was never configured, so the scraper
runs. Only :meth:`KillSwitch.enable` and :meth:`KillSwitch.disable` write it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from spscjobs.exceptions import KillSwitchEngaged, KillSwitchUnavailable
from spscjobs.models import utcnow
from spscjobs.reporting.alerts import AlertDispatcher
from spscjobs.storage.base import DocumentStore

logger = logging.getLogger(__name__)

CONTROL_COLLECTION = "system_controls"
CONTROL_KEY = "scraper"


class KillSwitch:
    """Checks and flips the remote enable flag.

    Use one instance per run: the disable alert goes out at most once per
    instance, however many check points see the switch off.
    """

    def __init__(
        self,
        store: DocumentStore,
        alerts: AlertDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._alerts = alerts
        self._clock = clock
        self._alerted = False

    def status(self) -> dict[str, Any]:
        doc = self._store.get(CONTROL_COLLECTION, CONTROL_KEY)
        if doc is None:
            return {"enabled": True, "reason": "Default (no control document)"}
        return doc

    def is_enabled(self, context: str = "startup") -> bool:
        """Return ``False`` if the scraper was disabled remotely.

        An unreadable control document raises :class:`KillSwitchUnavailable`.
        """
        try:
            control = self.status()
        except Exception as exc:
            raise KillSwitchUnavailable(f"Kill switch unreadable ({context}): {exc}") from exc
        if control.get("enabled") is not False:
            logger.debug("Kill switch check passed (%s).", context)
            return True

        logger.error("KILL SWITCH ACTIVATED - scraper disabled remotely (%s).", context)
        logger.error(
            "Disabled at: %s, reason: %s",
            control.get("updated_at", "unknown"),
            control.get("reason") or "not specified",
        )
        if self._alerts is not None and not self._alerted:
            self._alerted = True
            self._alerts.kill_switch(context, control.get("reason"), control.get("updated_at"))
        return False

    def ensure_enabled(self, context: str) -> None:
        if not self.is_enabled(context):
            raise KillSwitchEngaged(f"Kill switch engaged ({context})")

    def enable(self, reason: str = "Manual enable") -> None:
        self._write(True, reason)
        logger.info("Scraper enabled remotely: %s", reason)

    def disable(self, reason: str = "Manual disable") -> None:
        self._write(False, reason)
        logger.error("Scraper disabled remotely: %s", reason)

    def _write(self, enabled: bool, reason: str) -> None:
        self._store.set(
            CONTROL_COLLECTION,
            CONTROL_KEY,
            {"enabled": enabled, "reason": reason, "updated_at": self._clock().isoformat()},
            merge=True,
        )
