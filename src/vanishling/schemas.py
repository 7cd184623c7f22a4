import datetime as dt

from pydantic import BaseModel


class FileMeta(BaseModel):
    id: str
    original_filename: str | None = None
    size_bytes: int
    ttl: str
    created_at: dt.datetime
    expires_at: dt.datetime
    deleted_at: dt.datetime | None = None


class UploadResponse(BaseModel):
    file: FileMeta
