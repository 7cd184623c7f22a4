import datetime as dt
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from . import __version__
from .addressing import ContentAddresser
from .catalog import BlobCatalog
from .config import Settings, settings as default_settings
from .db import init_db, make_engine, make_session_factory
from .durations import format_duration
from .errors import (
    CollisionError,
    ForbiddenError,
    NotFoundError,
    StorageIOError,
    ValidationError,
)
from .journal import TTLJournal
from .reconciler import Reconciler
from .schemas import FileMeta, UploadResponse
from .storage import BlobStore, check_identifier, ensure_dir
from .uploads import UploadContext, UploadCoordinator

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def remote_addr(request: Request) -> str | None:
    # for audit purpose
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def _as_utc(value: dt.datetime | None) -> dt.datetime | None:
    # sqlite hands datetimes back without an offset
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=dt.timezone.utc)


def _declared_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings

    ensure_dir(Path(settings.data_dir))
    store = BlobStore(settings.storage_dir)
    journal = TTLJournal(settings.journal_path)

    engine = make_engine(settings.db_url)
    init_db(engine)
    catalog = BlobCatalog(make_session_factory(engine))

    hash_key = settings.hash_key.get_secret_value() if settings.hash_key is not None else None
    coordinator = UploadCoordinator(
        addresser=ContentAddresser.from_hex(hash_key),
        store=store,
        journal=journal,
        default_ttl=settings.default_ttl_delta,
        max_upload_bytes=settings.max_upload_bytes,
        catalog=catalog,
    )
    reconciler = Reconciler(
        journal=journal,
        store=store,
        interval_seconds=settings.reconcile_interval_seconds,
        catalog=catalog,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        reconciler.start()
        logger.info("reconciler started, interval %ss", settings.reconcile_interval_seconds)
        try:
            yield
        finally:
            await reconciler.stop()
            engine.dispose()

    app = FastAPI(title="Vanishling", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.journal = journal
    app.state.catalog = catalog
    app.state.coordinator = coordinator
    app.state.reconciler = reconciler

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        logger.info("%s: malformed request: %s", remote_addr(request), exc.errors())
        return JSONResponse(status_code=400, content={"detail": "Bad request"})

    @app.get("/ping")
    def ping():
        return Response(status_code=200)

    @app.api_route("/", methods=["POST", "PUT"], response_model=UploadResponse)
    async def upload(request: Request, file: UploadFile = File(...)):
        addr = remote_addr(request)
        ctx = UploadContext(
            filename=file.filename or "",
            size=_declared_size(file),
            remote_addr=addr,
            ttl_requested=request.headers.get(settings.ttl_header),
        )
        try:
            result = await run_in_threadpool(coordinator.accept, ctx, file.file)
        except ValidationError as e:
            logger.info("%s: %s", addr, e)
            raise HTTPException(status_code=400, detail="Bad request")
        except CollisionError as e:
            logger.warning("%s: %s", addr, e)
            raise HTTPException(status_code=409, detail="Conflict, retry the upload")
        except StorageIOError:
            logger.exception("%s: upload failed", addr)
            raise HTTPException(status_code=500, detail="Failed to store file")
        finally:
            await file.close()

        ttl = format_duration(result.ttl)
        body = UploadResponse(
            file=FileMeta(
                id=result.file_id,
                original_filename=ctx.filename,
                size_bytes=result.size_bytes,
                ttl=ttl,
                created_at=result.created_at,
                expires_at=result.expires_at,
            )
        )
        return Response(
            content=body.model_dump_json(),
            media_type="application/json",
            headers={settings.file_id_header: result.file_id, settings.ttl_header: ttl},
        )

    @app.get("/")
    async def download(request: Request):
        addr = remote_addr(request)
        file_id = request.headers.get(settings.file_id_header)
        if not file_id:
            logger.info("%s: download without %s header", addr, settings.file_id_header)
            raise HTTPException(status_code=400, detail="Bad request")
        try:
            data = await run_in_threadpool(store.get, file_id)
        except ForbiddenError as e:
            logger.warning("%s: %s", addr, e)
            raise HTTPException(status_code=403, detail="Forbidden")
        except (NotFoundError, ValidationError) as e:
            logger.info("%s: %s", addr, e)
            raise HTTPException(status_code=400, detail="Bad request")
        except StorageIOError:
            logger.exception("%s: download of %s failed", addr, file_id)
            raise HTTPException(status_code=500, detail="Failed to read file")
        logger.info("%s: served %s", addr, file_id)
        return Response(content=data, media_type="application/octet-stream")

    @app.get("/meta", response_model=FileMeta)
    async def get_file_meta(request: Request):
        file_id = request.headers.get(settings.file_id_header)
        if not file_id:
            raise HTTPException(status_code=400, detail="Bad request")
        try:
            check_identifier(file_id)
        except ForbiddenError:
            raise HTTPException(status_code=403, detail="Forbidden")
        record = await run_in_threadpool(catalog.get, file_id)
        if not record:
            raise HTTPException(status_code=404, detail="File not found")
        return FileMeta(
            id=record.id,
            original_filename=record.original_filename,
            size_bytes=record.size_bytes,
            ttl=format_duration(dt.timedelta(seconds=record.ttl_seconds)),
            created_at=_as_utc(record.created_at),
            expires_at=_as_utc(record.expires_at),
            deleted_at=_as_utc(record.deleted_at),
        )

    return app


def run() -> None:
    configure_logging(default_settings.log_level)
    app = create_app(default_settings)
    logger.info("listening on :%s", default_settings.port)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port, log_config=None)


if __name__ == "__main__":
    run()
