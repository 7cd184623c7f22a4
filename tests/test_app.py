"""Tests for the HTTP surface."""

import datetime as dt
from pathlib import Path

from fastapi import FastAPI
from httpx import AsyncClient

from vanishling.config import Settings


async def _upload(client: AsyncClient, data: bytes, name: str = "hello.txt", **headers: str):
    return await client.post("/", files={"file": (name, data, "text/plain")}, headers=headers)


async def test_ping(client: AsyncClient) -> None:
    response = await client.get("/ping")
    assert response.status_code == 200


async def test_round_trip(client: AsyncClient) -> None:
    response = await _upload(client, b"hello world")
    assert response.status_code == 200
    file_id = response.headers["x-file-id"]
    assert response.json()["file"]["id"] == file_id

    download = await client.get("/", headers={"x-file-id": file_id})
    assert download.status_code == 200
    assert download.content == b"hello world"


async def test_put_is_accepted(client: AsyncClient) -> None:
    response = await client.put("/", files={"file": ("a.bin", b"\x00\x01", "application/octet-stream")})
    assert response.status_code == 200
    assert response.headers["x-file-id"]


async def test_same_content_twice_is_two_files(client: AsyncClient) -> None:
    first = (await _upload(client, b"dup")).headers["x-file-id"]
    second = (await _upload(client, b"dup")).headers["x-file-id"]
    assert first != second
    for file_id in (first, second):
        assert (await client.get("/", headers={"x-file-id": file_id})).content == b"dup"


async def test_default_and_invalid_ttl(client: AsyncClient) -> None:
    plain = await _upload(client, b"a")
    invalid = await _upload(client, b"b", **{"x-ttl": "notaduration"})
    custom = await _upload(client, b"c", **{"x-ttl": "90s"})
    assert plain.status_code == invalid.status_code == custom.status_code == 200
    assert plain.headers["x-ttl"] == "5m0s"
    assert invalid.headers["x-ttl"] == "5m0s"
    assert custom.headers["x-ttl"] == "1m30s"


async def test_ttl_expiry(app: FastAPI, client: AsyncClient, settings: Settings) -> None:
    response = await _upload(client, b"short lived", **{"x-ttl": "1s"})
    file_id = response.headers["x-file-id"]
    blob = Path(settings.storage_dir) / file_id
    assert blob.exists()

    app.state.reconciler.run_once(dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=2))

    assert not blob.exists()
    assert (await client.get("/", headers={"x-file-id": file_id})).status_code == 400
    meta = await client.get("/meta", headers={"x-file-id": file_id})
    assert meta.json()["deleted_at"] is not None


async def test_not_yet_expired_survives_tick(app: FastAPI, client: AsyncClient) -> None:
    file_id = (await _upload(client, b"keep", **{"x-ttl": "1h"})).headers["x-file-id"]
    app.state.reconciler.run_once()
    assert (await client.get("/", headers={"x-file-id": file_id})).status_code == 200


async def test_zero_byte_upload_is_bad_request(client: AsyncClient) -> None:
    assert (await _upload(client, b"")).status_code == 400


async def test_missing_file_field_is_bad_request(client: AsyncClient) -> None:
    response = await client.post("/", data={"other": "x"})
    assert response.status_code == 400


async def test_oversized_upload_is_bad_request(client: AsyncClient, settings: Settings) -> None:
    response = await _upload(client, b"x" * (settings.max_upload_bytes + 1))
    assert response.status_code == 400


async def test_download_without_header(client: AsyncClient) -> None:
    assert (await client.get("/")).status_code == 400


async def test_download_unknown_id(client: AsyncClient) -> None:
    assert (await client.get("/", headers={"x-file-id": "deadbeef"})).status_code == 400


async def test_download_traversal_is_forbidden(client: AsyncClient) -> None:
    response = await client.get("/", headers={"x-file-id": "../../etc/passwd"})
    assert response.status_code == 403
    assert "passwd" not in response.text


async def test_meta(client: AsyncClient) -> None:
    file_id = (await _upload(client, b"meta!", name="m.txt", **{"x-ttl": "2m"})).headers["x-file-id"]
    response = await client.get("/meta", headers={"x-file-id": file_id})
    assert response.status_code == 200
    body = response.json()
    assert body["original_filename"] == "m.txt"
    assert body["size_bytes"] == 5
    assert body["ttl"] == "2m0s"
    assert body["deleted_at"] is None


async def test_meta_unknown_and_forbidden(client: AsyncClient) -> None:
    assert (await client.get("/meta", headers={"x-file-id": "nope"})).status_code == 404
    assert (await client.get("/meta", headers={"x-file-id": "../x"})).status_code == 403


async def test_journal_line_written_per_upload(client: AsyncClient, settings: Settings) -> None:
    file_id = (await _upload(client, b"j")).headers["x-file-id"]
    lines = settings.journal_path.read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].endswith(f",5m0s,{Path(settings.storage_dir).absolute() / file_id}")


async def test_real_ip_header_is_audited(app: FastAPI, client: AsyncClient) -> None:
    file_id = (await _upload(client, b"ip", **{"x-real-ip": "203.0.113.9"})).headers["x-file-id"]
    assert app.state.catalog.get(file_id).remote_addr == "203.0.113.9"


async def test_lifespan_starts_and_stops_reconciler(app: FastAPI) -> None:
    async with app.router.lifespan_context(app):
        assert app.state.reconciler.running
    assert not app.state.reconciler.running


async def test_overlong_id_is_bad_request(client: AsyncClient) -> None:
    assert (await client.get("/", headers={"x-file-id": "f" * 300})).status_code == 400


async def test_out_of_range_ttl_uses_default(client: AsyncClient) -> None:
    response = await _upload(client, b"big ttl", **{"x-ttl": "99999999999999999999h"})
    assert response.status_code == 200
    assert response.headers["x-ttl"] == "5m0s"


async def test_meta_timestamps_carry_utc_offset(client: AsyncClient) -> None:
    file_id = (await _upload(client, b"tz")).headers["x-file-id"]
    body = (await client.get("/meta", headers={"x-file-id": file_id})).json()
    for field in ("created_at", "expires_at"):
        parsed = dt.datetime.fromisoformat(body[field].replace("Z", "+00:00"))
        assert parsed.utcoffset() == dt.timedelta(0)
