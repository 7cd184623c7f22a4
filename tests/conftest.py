"""Shared pytest fixtures for vanishling tests."""

from __future__ import annotations

import datetime as dt
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from vanishling.addressing import ContentAddresser
from vanishling.catalog import BlobCatalog
from vanishling.config import Settings
from vanishling.db import init_db, make_engine, make_session_factory
from vanishling.journal import TTLJournal
from vanishling.main import create_app
from vanishling.storage import BlobStore
from vanishling.uploads import UploadCoordinator

if TYPE_CHECKING:
    from pathlib import Path

    from fastapi import FastAPI

TEST_KEY = bytes(range(32))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=str(tmp_path),
        storage_dir=str(tmp_path / "uploads"),
        journal_dir=str(tmp_path / "log"),
        journal_file="entries.log",
        hash_key=TEST_KEY.hex(),
        default_ttl="5m",
        reconcile_interval_seconds=60,
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def store(tmp_path: Path) -> BlobStore:
    return BlobStore(tmp_path / "uploads")


@pytest.fixture
def journal(tmp_path: Path) -> TTLJournal:
    return TTLJournal(tmp_path / "log" / "entries.log")


@pytest.fixture
def catalog(tmp_path: Path) -> BlobCatalog:
    engine = make_engine(f"sqlite:///{tmp_path}/catalog.db")
    init_db(engine)
    yield BlobCatalog(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def addresser() -> ContentAddresser:
    return ContentAddresser(TEST_KEY)


@pytest.fixture
def coordinator(addresser: ContentAddresser, store: BlobStore, journal: TTLJournal, catalog: BlobCatalog) -> UploadCoordinator:
    return UploadCoordinator(
        addresser=addresser,
        store=store,
        journal=journal,
        default_ttl=dt.timedelta(minutes=5),
        max_upload_bytes=1024,
        catalog=catalog,
    )


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
