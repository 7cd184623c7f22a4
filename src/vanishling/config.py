import datetime as dt
from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .durations import parse_duration


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    port: int = 8080
    host: str = "0.0.0.0"
    log_level: str = "INFO"

    data_dir: str = "/tmp/vanishling"
    storage_dir: str = "/tmp/vanishling/uploads"
    journal_dir: str = "/tmp/vanishling/log"
    journal_file: str = "entries.log"

    reconcile_interval_seconds: float = 60.0
    default_ttl: str = "5m"
    max_upload_bytes: int = 32 * 1024 * 1024

    file_id_header: str = "x-file-id"
    ttl_header: str = "x-ttl"

    # 64 hex chars; a random per-process key is used when unset
    hash_key: SecretStr | None = None

    @property
    def journal_path(self) -> Path:
        return Path(self.journal_dir) / self.journal_file

    @property
    def default_ttl_delta(self) -> dt.timedelta:
        return parse_duration(self.default_ttl)

    @property
    def db_url(self) -> str:
        # sqlite catalog next to the blobs
        return f"sqlite:///{self.data_dir.rstrip('/')}/vanishling.db"


settings = Settings()
