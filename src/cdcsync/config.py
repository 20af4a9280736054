from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./cdcsync.db"
    encryption_key: str = ""  # empty: connection passwords stored as plaintext
    starrocks_http_port: int = 8030
    risingwave_default_database: str = "dev"
    max_concurrent_tasks: int = 4
    history_default_limit: int = 50
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "CDCSYNC_"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
