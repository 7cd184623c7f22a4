"""Queryable record of accepted uploads.

The journal remains the source of truth for deletions; this table only
answers metadata lookups and keeps an audit trail.
"""

import datetime as dt
import logging

from sqlalchemy.orm import sessionmaker

from .models import StoredBlob, utc_now

logger = logging.getLogger(__name__)


class BlobCatalog:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def record_upload(
        self,
        *,
        file_id: str,
        original_filename: str,
        remote_addr: str | None,
        size_bytes: int,
        ttl: dt.timedelta,
        stored_path: str,
        created_at: dt.datetime,
        expires_at: dt.datetime,
    ) -> StoredBlob:
        record = StoredBlob(
            id=file_id,
            original_filename=original_filename,
            remote_addr=remote_addr,
            size_bytes=size_bytes,
            ttl_seconds=int(ttl.total_seconds()),
            stored_path=stored_path,
            created_at=created_at,
            expires_at=expires_at,
        )
        with self._session_factory() as db:
            db.add(record)
            db.commit()
        return record

    def get(self, file_id: str) -> StoredBlob | None:
        with self._session_factory() as db:
            return db.get(StoredBlob, file_id)

    def mark_deleted(self, file_id: str, when: dt.datetime | None = None) -> bool:
        with self._session_factory() as db:
            record = db.get(StoredBlob, file_id)
            if record is None:
                return False
            if record.deleted_at is None:
                record.deleted_at = when or utc_now()
                db.commit()
            return True
