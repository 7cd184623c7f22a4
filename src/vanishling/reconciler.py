"""Periodic enforcement of TTL expiry against the journal."""

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from .catalog import BlobCatalog
from .durations import format_duration
from .errors import StorageIOError
from .journal import TTLJournal
from .storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    examined: int = 0
    expired: int = 0
    deleted: int = 0
    missing: int = 0
    failed: int = 0


class Reconciler:
    """Scan the journal on a fixed interval and delete expired blobs.

    Holds no state between ticks: a fresh instance over the same journal
    picks up every outstanding deletion, which is what makes expiry survive
    restarts.
    """

    def __init__(
        self,
        journal: TTLJournal,
        store: BlobStore,
        interval_seconds: float = 60.0,
        catalog: BlobCatalog | None = None,
    ) -> None:
        self._journal = journal
        self._store = store
        self._interval = interval_seconds
        self._catalog = catalog
        self._stop: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self, now: dt.datetime | None = None) -> ReconcileReport:
        now = now or dt.datetime.now(dt.timezone.utc)
        examined = expired = deleted = missing = failed = 0

        logger.info("journal: checking %s for pending deletion", self._journal.path)
        try:
            for record in self._journal.scan():
                examined += 1
                if not record.is_expired(now):
                    continue
                expired += 1

                path = Path(record.blob_path)
                if not path.exists():
                    missing += 1
                    continue

                if self._store.delete(path):
                    deleted += 1
                    logger.info(
                        "journal: %s deleted due to ttl expiration: %s, expired at %s",
                        path, format_duration(record.ttl), record.expires_at.isoformat(),
                    )
                    self._mark_deleted(path.name, now)
                else:
                    failed += 1
        except StorageIOError:
            logger.exception("journal: scan aborted")

        report = ReconcileReport(examined=examined, expired=expired, deleted=deleted, missing=missing, failed=failed)
        logger.info("journal: scan done %s", report)
        return report

    def _mark_deleted(self, file_id: str, when: dt.datetime) -> None:
        if self._catalog is None:
            return
        try:
            self._catalog.mark_deleted(file_id, when)
        except SQLAlchemyError:
            logger.exception("catalog: could not mark %s deleted", file_id)

    async def run(self) -> None:
        """Tick every interval until ``stop`` is called."""
        if self._stop is None:
            self._stop = asyncio.Event()
        stop = self._stop
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            else:
                break
            # a scan in a worker thread is never interrupted halfway
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("journal: reconcile tick failed, retrying next interval")

    def start(self) -> asyncio.Task:
        if self.running:
            raise RuntimeError("reconciler already running")
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self.run(), name="vanishling-reconciler")
        return self._task

    async def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
