from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./fieldsync.db"
    api_base_url: str = "http://localhost:8080"
    credentials_dir: Path = Path.home() / ".fieldsync"
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delays: List[float] = [1.0, 2.0, 4.0, 8.0]  # seconds, indexed by retry_count
    schedule_retention_days: int = 90
    connectivity_poll_seconds: int = 15
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    class Config:
        env_prefix = "FIELDSYNC_"
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
