import datetime as dt
import logging
from dataclasses import dataclass
from typing import BinaryIO, Callable

from sqlalchemy.exc import SQLAlchemyError

from .addressing import ContentAddresser
from .catalog import BlobCatalog
from .durations import format_duration, parse_duration
from .errors import StorageIOError, ValidationError
from .journal import TTLJournal
from .models import utc_now
from .storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UploadContext:
    """Everything one request knows about its upload. Never shared."""

    filename: str
    size: int
    remote_addr: str | None = None
    ttl_requested: str | None = None


@dataclass(frozen=True, slots=True)
class UploadResult:
    file_id: str
    path: str
    size_bytes: int
    ttl: dt.timedelta
    created_at: dt.datetime
    expires_at: dt.datetime


def validate_filename(filename: str) -> None:
    if not filename:
        raise ValidationError("invalid file name")
    if ".." in filename or "/" in filename or "\\" in filename:
        raise ValidationError(f"invalid file name: {filename!r}")


class UploadCoordinator:
    def __init__(
        self,
        addresser: ContentAddresser,
        store: BlobStore,
        journal: TTLJournal,
        default_ttl: dt.timedelta,
        max_upload_bytes: int | None = None,
        catalog: BlobCatalog | None = None,
        clock: Callable[[], dt.datetime] = utc_now,
    ) -> None:
        self._addresser = addresser
        self._store = store
        self._journal = journal
        self._default_ttl = default_ttl
        self._max_upload_bytes = max_upload_bytes
        self._catalog = catalog
        self._clock = clock

    def resolve_ttl(self, requested: str | None, remote_addr: str | None = None) -> dt.timedelta:
        """Use the requested TTL when it parses to a positive duration, else the default."""
        if not requested:
            return self._default_ttl
        try:
            ttl = parse_duration(requested)
        except (ValueError, OverflowError):
            logger.warning("%s: invalid duration %r, using default %s", remote_addr, requested, format_duration(self._default_ttl))
            return self._default_ttl
        if ttl <= dt.timedelta(0):
            logger.warning("%s: non-positive duration %r, using default %s", remote_addr, requested, format_duration(self._default_ttl))
            return self._default_ttl
        return ttl

    def accept(self, ctx: UploadContext, stream: BinaryIO) -> UploadResult:
        validate_filename(ctx.filename)
        if ctx.size <= 0:
            raise ValidationError("zero byte file uploaded")
        if self._max_upload_bytes is not None and ctx.size > self._max_upload_bytes:
            raise ValidationError(f"upload of {ctx.size} bytes exceeds limit of {self._max_upload_bytes}")

        ttl = self.resolve_ttl(ctx.ttl_requested, ctx.remote_addr)
        created_at = self._clock()
        try:
            expires_at = created_at + ttl
        except OverflowError:
            raise ValidationError(f"ttl {format_duration(ttl)} is out of range") from None

        # хэш и запись делают два прохода по одному потоку
        file_id = self._addresser.address(stream)
        stream.seek(0)
        size = self._store.put(file_id, stream)
        path = str(self._store.path_for(file_id))
        logger.info(
            "%s: stored '%s' as %s (%d bytes), ttl %s",
            ctx.remote_addr, ctx.filename, file_id, size, format_duration(ttl),
        )

        try:
            self._journal.append(expires_at, ttl, path)
        except StorageIOError:
            # blob stays on disk with no scheduled deletion
            logger.exception("%s: could not write journal entry for %s, it will not expire", ctx.remote_addr, file_id)

        if self._catalog is not None:
            try:
                self._catalog.record_upload(
                    file_id=file_id,
                    original_filename=ctx.filename,
                    remote_addr=ctx.remote_addr,
                    size_bytes=size,
                    ttl=ttl,
                    stored_path=path,
                    created_at=created_at,
                    expires_at=expires_at,
                )
            except SQLAlchemyError:
                logger.exception("%s: could not record %s in catalog", ctx.remote_addr, file_id)

        return UploadResult(
            file_id=file_id,
            path=path,
            size_bytes=size,
            ttl=ttl,
            created_at=created_at,
            expires_at=expires_at,
        )
