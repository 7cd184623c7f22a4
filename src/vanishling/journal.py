"""Append-only journal of scheduled deletions.

One record per line: ``expiresAt,ttl,absoluteBlobPath``. ``expiresAt`` is
ISO 8601 in UTC and ``ttl`` uses Go duration syntax. The journal is never
rewritten; every reconcile tick rescans it from the top.
"""

import datetime as dt
import logging
import os
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from .durations import format_duration, parse_duration
from .errors import JournalParseError, StorageIOError
from .storage import ensure_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class JournalRecord:
    expires_at: dt.datetime
    ttl: dt.timedelta
    blob_path: str

    def to_line(self) -> str:
        expires = self.expires_at.astimezone(dt.timezone.utc).isoformat(timespec="microseconds")
        return f"{expires},{format_duration(self.ttl)},{self.blob_path}\n"

    @classmethod
    def parse(cls, line: str) -> "JournalRecord":
        fields = line.rstrip("\r\n").split(",", 2)
        if len(fields) != 3:
            raise JournalParseError(line, f"expected 3 fields, got {len(fields)}")
        raw_expires, raw_ttl, blob_path = fields

        try:
            expires_at = dt.datetime.fromisoformat(raw_expires)
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=dt.timezone.utc)
            expires_at = expires_at.astimezone(dt.timezone.utc)
        except (ValueError, OverflowError):
            raise JournalParseError(line, "bad expiration timestamp") from None

        try:
            ttl = parse_duration(raw_ttl)
        except (ValueError, OverflowError):
            raise JournalParseError(line, "bad ttl") from None

        if not blob_path:
            raise JournalParseError(line, "empty blob path")
        return cls(expires_at=expires_at, ttl=ttl, blob_path=blob_path)

    def is_expired(self, now: dt.datetime) -> bool:
        return now >= self.expires_at


class TTLJournal:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        ensure_dir(self._path.parent)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, expires_at: dt.datetime, ttl: dt.timedelta, blob_path: str | Path) -> JournalRecord:
        """Append one record and fsync before returning."""
        record = JournalRecord(expires_at=expires_at, ttl=ttl, blob_path=str(blob_path))
        line = record.to_line()
        with self._lock:
            try:
                with self._path.open("a+b") as wal:
                    data = line.encode("utf-8")
                    end = wal.seek(0, os.SEEK_END)
                    if end > 0:
                        # terminate a torn tail left by a crash mid-append
                        wal.seek(end - 1)
                        if wal.read(1) != b"\n":
                            data = b"\n" + data
                    wal.write(data)
                    wal.flush()
                    os.fsync(wal.fileno())
            except OSError as e:
                raise StorageIOError(f"cannot append to journal {self._path}: {e}") from e
        return record

    def scan(self) -> Iterator[JournalRecord]:
        """Yield every well-formed record in file order.

        A missing journal yields nothing. Malformed lines are logged and
        skipped so one bad record never hides the rest.
        """
        try:
            wal = self._path.open("r", encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageIOError(f"cannot open journal {self._path}: {e}") from e

        with wal:
            for lineno, line in enumerate(wal, start=1):
                if not line.strip():
                    continue
                if not line.endswith("\n"):
                    # tail of an append still in flight
                    logger.debug("journal %s:%d incomplete, leaving for next scan", self._path, lineno)
                    continue
                try:
                    yield JournalRecord.parse(line)
                except JournalParseError as e:
                    logger.warning("journal %s:%d skipped: %s", self._path, lineno, e.reason)
