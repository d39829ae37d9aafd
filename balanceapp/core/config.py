from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Balance Backend"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # 기본 SQLite 파일 DB, 프로젝트 루트 기준 절대경로 (CWD 영향 없음)
    _default_db_path = Path(__file__).resolve().parents[2] / "db.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "Europe/Rome"

    # Scheduled trigger: when set, callers must send "Authorization: Bearer <secret>"
    CRON_SECRET: str | None = None

    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    EXPO_ACCESS_TOKEN: str | None = None
    PUSH_CHUNK_SIZE: int = 100
    PUSH_TIMEOUT_SECONDS: float = 10.0

    RECURRING_LEASE_TTL_SECONDS: int = 300
    RECURRING_RESCHEDULE_ANCHOR: str = "CURRENT_DUE_DATE"
    JOB_HISTORY_SIZE: int = 100

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="BALANCE_", case_sensitive=False)


settings = Settings()
