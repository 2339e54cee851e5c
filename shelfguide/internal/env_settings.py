import pathlib
from typing import Literal

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApplicationSettings(BaseModel):
    debug: bool = False
    config_dir: str = "./config"
    """Directory holding the durable cover cache and log files."""
    port: int = 8000
    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)"""
    log_format: str = "text"
    """Log format: 'text' for human-readable, 'json' for machine-readable"""
    log_file: str | None = None
    """Optional log file path (relative to config_dir/logs/). If not set, logs to stdout only"""


class LookupSettings(BaseModel):
    base_url: str = "https://www.googleapis.com/books/v1/volumes"
    api_key: str = ""
    """Optional Google Books API key (works without key but has stricter quotas)"""
    timeout_seconds: float = 8.0
    """Hard deadline for a single volume lookup"""
    retries: int = 1
    """How many times a lookup is repeated after an empty result or a non-timeout failure"""
    retry_delay_ms: int = 600
    max_results: int = 1
    print_type: str = "books"


class CoverSettings(BaseModel):
    max_concurrency: int = 3
    """Number of enrichment workers per batch"""
    request_gap_ms: int = 140
    """Minimum gap between the start of any two outbound lookups"""
    failed_ttl_hours: int = 24
    """How long a remembered miss suppresses new lookups for the same book"""
    cache_backend: Literal["file", "sqlite", "memory"] = "file"
    cache_file: str = "cover-cache.json"
    """Relative path to the JSON cover cache given the config directory. If absolute, it ignores the config dir location."""
    sqlite_path: str = "cover-cache.sqlite"
    """Relative path to the sqlite cover cache given the config directory. If absolute, it ignores the config dir location."""
    memory_maxsize: int | None = None
    """Upper bound for the in-process cover tier. None = unlimited"""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(  # pyright: ignore[reportUnannotatedClassAttribute]
        env_prefix="SG_",
        env_nested_delimiter="__",
        nested_model_default_partial_update=True,
        env_file=(".env.local", ".env"),
        extra="ignore",
    )

    app: ApplicationSettings = ApplicationSettings()
    lookup: LookupSettings = LookupSettings()
    covers: CoverSettings = CoverSettings()

    def _resolve(self, path: str) -> str:
        if path.startswith("/"):
            return path
        return str(pathlib.Path(self.app.config_dir) / path)

    def get_cache_file_path(self) -> str:
        return self._resolve(self.covers.cache_file)

    def get_sqlite_path(self) -> str:
        return self._resolve(self.covers.sqlite_path)
