"""Single-run lock stored at ``scraper_locks/current``.

A held, unexpired lock means another run is in progress; that is a normal
exit, not an error. Crashed runs leave their lock to expire, so the TTL must
outlast the longest real run. The lock is advisory: a process that ignores
it can still write.
"""

from __future__ import annotations

import logging
import math
import os
import socket
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator

from spscjobs.models import utcnow
from spscjobs.storage.base import Document, DocumentStore

logger = logging.getLogger(__name__)

LOCK_COLLECTION = "scraper_locks"
LOCK_KEY = "current"
DEFAULT_TTL = timedelta(minutes=30)


class RunLock:
    """Process-wide mutual exclusion for scraper runs."""

    def __init__(
        self,
        store: DocumentStore,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utcnow,
        environment: str = "development",
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._environment = environment
        self._token: str | None = None

    @property
    def held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        """Take the lock unless a live one exists. Store errors propagate."""
        now = self._clock()
        token = f"{socket.gethostname()}:{os.getpid()}:{id(self)}:{now.isoformat()}"
        fresh = {
            "token": token,
            "acquired_at": now.isoformat(),
            "expires_at": (now + self._ttl).isoformat(),
            "hostname": socket.gethostname(),
            "pid": os.getpid(),
            "environment": self._environment,
        }
        blocking: list[Document] = []

        def _take(current: Document | None) -> Document | None:
            if current is not None:
                if datetime.fromisoformat(current["expires_at"]) > now:
                    blocking.append(current)
                    return None
                logger.warning("Found expired lock from %s — taking over.", current.get("hostname"))
            return fresh

        self._store.modify(LOCK_COLLECTION, LOCK_KEY, _take)
        if blocking:
            holder = blocking[0]
            remaining = datetime.fromisoformat(holder["expires_at"]) - now
            logger.warning("Scraper is already running (lock held by another instance).")
            logger.warning(
                "Lock holder: %s (pid %s), acquired %s, expires in %d min.",
                holder.get("hostname", "unknown"),
                holder.get("pid", "?"),
                holder.get("acquired_at"),
                math.ceil(remaining.total_seconds() / 60),
            )
            return False

        self._token = token
        logger.info("Scraper lock acquired; expires at %s.", fresh["expires_at"])
        return True

    def release(self) -> None:
        """Delete the lock if this instance still owns it. Never raises."""
        if self._token is None:
            return
        token = self._token
        try:
            current = self._store.get(LOCK_COLLECTION, LOCK_KEY)
            if current is not None and current.get("token") == token:
                self._store.delete(LOCK_COLLECTION, LOCK_KEY)
                logger.info("Scraper lock released.")
            else:
                logger.warning("Lock was taken over by another run; leaving it in place.")
        except Exception:
            logger.exception("Failed to release scraper lock; it will expire on its own.")
        finally:
            self._token = None

    @contextmanager
    def guard(self) -> Iterator[bool]:
        """Hold the lock for the body of a ``with`` block.

        Yields whether the lock was acquired; releases on every exit path,
        including task cancellation.
        """
        acquired = self.acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
