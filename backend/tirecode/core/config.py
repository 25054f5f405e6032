"""Application configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed settings exposed via dependency injection throughout the app."""

    # Read .env with BOM tolerance; case-sensitive keys
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=True,
    )

    APP_NAME: str = "Tire Code API"
    ENV: str = "dev"  # dev | staging | prod
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True  # one JSON object per line; set false for local reading

    # JWT
    SECRET_KEY: str  # set via env/.env
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    JWT_ISSUER: str = "tirecode-api"
    JWT_AUDIENCE: str = "tirecode-admin"

    # CORS
    CORS_ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    # DB
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "tirecode"
    DB_PASSWORD: str = ""  # set via env/.env
    DB_NAME: str = "tirecode"
    DB_URL: str | None = None  # full SQLAlchemy URL, overrides the DB_* parts
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    DB_ISOLATION_LEVEL: str = "READ COMMITTED"
    DB_RETRY_ATTEMPTS: int = 4
    DB_RETRY_BASE_DELAY: float = 0.05
    DB_RETRY_JITTER: float = 0.025
    DB_NOWAIT_LOCKS: bool = False

    # Redis (optional - lookups fall back to an in-process cache)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_ENABLED: bool = True

    # Cache lifetimes in seconds
    LOOKUP_CACHE_TTL_SEC: int = 3600
    SUGGESTIONS_CACHE_TTL_SEC: int = 300

    # Rate limits, see tirecode.core.rate_limit.limiter for syntax.
    LOOKUP_RATE: str = "100/minute"
    CSV_UPLOAD_RATE: str = "5/minute"
    LOGIN_RATE: str = "10/minute"
    # Proxies whose X-Forwarded-For uvicorn trusts for the client address.
    FORWARDED_ALLOW_IPS: str = "127.0.0.1"

    # Maximum allowed upload size for user-supplied files.
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024  # 5 MB
    # How many CSV uploads may be parsed in worker threads at once.
    CSV_MAX_CONCURRENCY: int = 4
    SECURITY_MAX_CONCURRENCY: int = 4

    # Celery task runner for CSV imports
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None
    CSV_IMPORT_MAX_RETRIES: int = 3
    CSV_IMPORT_JOB_TTL_SEC: int = 48 * 3600

    # Public code issuance
    CODE_SEQUENCE_NAME: str = "tire_code"
    CODE_SEQUENCE_START: int = 100

    @property
    def DATABASE_URL(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        return (
            f"mysql+aiomysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}?charset=utf8mb4"
        )

    @property
    def REDIS_URL(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def celery_broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def celery_result_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self.REDIS_URL


settings = Settings()
