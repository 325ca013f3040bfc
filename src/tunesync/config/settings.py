"""Application settings loaded from environment variables and .env files."""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./tunesync.db"
    echo: bool = False


# Hey future me - auth_cookie is the WHOLE browser cookie string of a signed-in session.
# The SAPISID value inside it is what the remote uses to build the Authorization header,
# so don't try to trim it down to a single cookie. An empty cookie means "not signed in".
class RemoteSettings(BaseModel):
    """Remote catalog service settings."""

    base_url: str = "https://music.youtube.com/youtubei/v1/"
    upload_url: str = "https://upload.youtube.com/upload/usermusic/http"
    origin: str = "https://music.youtube.com"
    api_key: str = ""
    auth_cookie: str = ""
    timeout: float = 30.0
    connectivity_url: str = "https://www.google.com/generate_204"
    throttle_bytes_per_second: int = 0


class MusicBrainzSettings(BaseModel):
    """MusicBrainz API settings (used for catalog identifier lookups)."""

    app_name: str = "TuneSync"
    app_version: str = "1.0.0"
    contact: str = "https://github.com/tunesync/tunesync"


class UploaderSettings(BaseModel):
    """Reconciliation and upload behaviour."""

    watch_folders: list[str] = Field(default_factory=list)
    # 295 MiB - the remote rejects anything larger than its "300 MB" track limit
    max_upload_bytes: int = 309_329_920
    upload_retry_attempts: int = 5
    upload_retry_delay_seconds: float = 10.0
    unexpected_retry_attempts: int = 5
    unexpected_retry_delay_seconds: float = 1.0
    artist_cache_ttl_seconds: int = 7200
    prefetch_enabled: bool = False
    prefetch_workers: int = 4
    poll_interval_seconds: float = 1.0
    similarity_floor: float = 0.75
    match_threshold: float = 0.8


class Settings(BaseSettings):
    """Top-level settings.

    Nested sections are addressed with a double underscore, e.g.
    ``TUNESYNC_UPLOADER__PREFETCH_ENABLED=true``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUNESYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "tunesync"
    log_level: str = "INFO"
    log_json: bool = False

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    musicbrainz: MusicBrainzSettings = Field(default_factory=MusicBrainzSettings)
    uploader: UploaderSettings = Field(default_factory=UploaderSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
