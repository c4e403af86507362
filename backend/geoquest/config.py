from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "geoquest-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "GeoQuest")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/geoquest_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    realtime_backend: str = os.getenv("REALTIME_BACKEND", "redis")  # redis|memory
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_uploads: str = os.getenv("S3_BUCKET_UPLOADS", "geoquest-uploads-dev")

    # Auth
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    cron_secret: str = os.getenv("CRON_SECRET", "dev-cron-secret")

    # Scoring oracle (OpenAI-compatible chat completions gateway)
    oracle_base_url: str = os.getenv("ORACLE_BASE_URL", "https://openrouter.ai/api/v1")
    oracle_api_key: str = os.getenv("ORACLE_API_KEY", "")
    oracle_model: str = os.getenv("ORACLE_MODEL", "anthropic/claude-haiku-4-5")
    oracle_timeout_s: float = float(os.getenv("ORACLE_TIMEOUT_S", "25"))

    # Gameplay
    gps_max_accuracy_m: float = float(os.getenv("GPS_MAX_ACCURACY_M", "50"))
    position_broadcast_interval_s: int = int(os.getenv("POSITION_BROADCAST_INTERVAL_S", "10"))
    media_retention_days: int = int(os.getenv("MEDIA_RETENTION_DAYS", "30"))
    kids_variants: list[str] = os.getenv("KIDS_VARIANTS", "jeugdtocht,voetbalmissie").split(",")
    default_max_teams: int = int(os.getenv("DEFAULT_MAX_TEAMS", "20"))

settings = Settings()
